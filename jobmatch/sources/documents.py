from __future__ import annotations

import asyncio
import logging

import httpx

from jobmatch.core.config import settings
from jobmatch.parsing.parse import UnsupportedDocumentError, parse_document_bytes

from .models import DocumentRef, DocumentText

logger = logging.getLogger(__name__)

MAX_DOCUMENT_BYTES = 20 * 1024 * 1024  # 20 MB


class HttpDocumentResolver:
    """Downloads an uploaded document from object storage and extracts its text locally."""

    def __init__(
        self,
        *,
        timeout_s: float | None = None,
        max_bytes: int = MAX_DOCUMENT_BYTES,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._timeout_s = timeout_s if timeout_s is not None else settings.http_timeout_s
        self._max_bytes = max_bytes
        self._transport = transport

    async def _download(self, url: str) -> bytes:
        async with httpx.AsyncClient(
            timeout=self._timeout_s,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
            content = response.content
        if len(content) > self._max_bytes:
            raise UnsupportedDocumentError(f"File exceeds {self._max_bytes} bytes")
        return content

    async def resolve(self, ref: DocumentRef) -> DocumentText:
        try:
            content = await self._download(ref.url)
        except httpx.HTTPStatusError as exc:
            logger.warning("document_fetch_failed name=%s status=%s", ref.name, exc.response.status_code)
            return DocumentText(ok=False, reason=f"Failed to fetch document: HTTP {exc.response.status_code}")
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("document_fetch_failed name=%s: %s", ref.name, exc)
            return DocumentText(ok=False, reason=f"Failed to fetch document: {exc}")
        except UnsupportedDocumentError as exc:
            return DocumentText(ok=False, reason=str(exc))

        try:
            parsed = await asyncio.to_thread(parse_document_bytes, content, ref.name)
        except UnsupportedDocumentError as exc:
            return DocumentText(ok=False, reason=str(exc))
        except Exception as exc:  # noqa: BLE001 - pypdf/python-docx raise many unrelated types
            logger.warning("document_parse_failed name=%s: %s", ref.name, exc)
            return DocumentText(ok=False, reason=f"Document text extraction failed: {exc}")

        if not parsed.has_text:
            return DocumentText(ok=False, reason="Document appears to be empty or contains no extractable text")
        logger.info("document_parsed name=%s type=%s chars=%s", ref.name, parsed.source_type, len(parsed.text))
        return DocumentText(ok=True, text=parsed.text)
