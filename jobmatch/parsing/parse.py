from __future__ import annotations

import hashlib
from io import BytesIO
from pathlib import PurePosixPath

from docx import Document
from pypdf import PdfReader

from .models import ParsedBlock, ParsedDoc

PDF_MAGIC = b"%PDF-"
ZIP_MAGICS = (b"PK\x03\x04", b"PK\x05\x06", b"PK\x07\x08")
TEXT_EXTENSIONS = {".txt", ".md", ".markdown", ".rst", ".csv", ".json"}


class UnsupportedDocumentError(ValueError):
    pass


def _compute_doc_id(text: str, filename: str) -> str:
    seed = text if text.strip() else filename
    digest = hashlib.sha256(seed.encode("utf-8", errors="ignore")).hexdigest()
    return digest[:16]


def detect_source_type(content: bytes, filename: str) -> str:
    extension = PurePosixPath(filename.split("?", 1)[0]).suffix.lower()
    if content.startswith(PDF_MAGIC):
        return "pdf"
    if content.startswith(ZIP_MAGICS):
        if extension in {".docx", ""}:
            return "docx"
        raise UnsupportedDocumentError(f"Unsupported archive type '{extension}'. Supported types: .pdf, .docx, .txt")
    if extension == ".pdf":
        raise UnsupportedDocumentError("File does not appear to be a valid PDF")
    if extension in TEXT_EXTENSIONS or not extension:
        return "txt"
    raise UnsupportedDocumentError(f"Unsupported file type '{extension}'. Supported types: .pdf, .docx, .txt")


def _parse_txt(content: bytes) -> tuple[str, list[ParsedBlock], list[str]]:
    warnings: list[str] = []
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError:
        text = content.decode("utf-8", errors="replace")
        warnings.append("Text was not valid UTF-8; undecodable bytes were replaced.")
    return text, [], warnings


def _parse_pdf(content: bytes) -> tuple[str, list[ParsedBlock], list[str]]:
    warnings: list[str] = []
    blocks: list[ParsedBlock] = []

    reader = PdfReader(BytesIO(content))
    text_parts: list[str] = []
    for index, page in enumerate(reader.pages, start=1):
        page_text = (page.extract_text() or "").strip()
        if page_text:
            text_parts.append(f"--- Page {index} ---\n{page_text}")
            blocks.append(ParsedBlock(page=index, text=page_text))
    if not text_parts:
        warnings.append("PDF appears to be empty or contains no extractable text")
    return "\n".join(text_parts), blocks, warnings


def _parse_docx(content: bytes) -> tuple[str, list[ParsedBlock], list[str]]:
    warnings: list[str] = []
    blocks: list[ParsedBlock] = []

    document = Document(BytesIO(content))
    paragraphs = [p.text.strip() for p in document.paragraphs if p.text and p.text.strip()]
    for paragraph_text in paragraphs:
        blocks.append(ParsedBlock(page=None, text=paragraph_text))
    if not paragraphs:
        warnings.append("No extractable text found in DOCX.")
    return "\n".join(paragraphs), blocks, warnings


def parse_document_bytes(content: bytes, filename: str) -> ParsedDoc:
    """Extract plain text from an uploaded document held in memory.

    Raises ``UnsupportedDocumentError`` for formats we cannot read; parser
    failures from pypdf / python-docx propagate to the caller.
    """
    if not content:
        raise UnsupportedDocumentError("File is empty")

    source_type = detect_source_type(content, filename)
    if source_type == "pdf":
        text, blocks, warnings = _parse_pdf(content)
    elif source_type == "docx":
        text, blocks, warnings = _parse_docx(content)
    else:
        text, blocks, warnings = _parse_txt(content)

    return ParsedDoc(
        doc_id=_compute_doc_id(text=text, filename=filename),
        filename=filename,
        source_type=source_type,
        text=text.strip(),
        blocks=blocks,
        parsing_warnings=warnings,
    )
