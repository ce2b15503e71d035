from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Protocol, Sequence, TypeVar

from jobmatch.extraction.config import PipelineConfig

from .github import is_repository_url
from .labels import part_label, unique_label
from .models import DocumentRef, DocumentText, RepositoryContent, Source

logger = logging.getLogger(__name__)

FREE_TEXT_LABEL = "Resume text"
PLACEHOLDER_TEXTS = {
    "no resume provided",
    "no resume text provided",
    "no resume content",
    "n/a",
    "na",
    "none",
}

T = TypeVar("T")
R = TypeVar("R")


class DocumentResolver(Protocol):
    async def resolve(self, ref: DocumentRef) -> DocumentText: ...


class RepositoryFetcher(Protocol):
    async def fetch(self, url: str) -> RepositoryContent: ...


def is_placeholder_text(text: str | None) -> bool:
    stripped = (text or "").strip()
    if not stripped:
        return True
    return stripped.strip(".").lower() in PLACEHOLDER_TEXTS


def split_text(content: str, max_chars: int) -> list[str]:
    """Split into ordered parts of at most ``max_chars``, preferring line boundaries."""
    if len(content) <= max_chars:
        return [content]

    parts: list[str] = []
    remaining = content
    while len(remaining) > max_chars:
        cut = remaining.rfind("\n", 0, max_chars)
        if cut <= max_chars // 2:
            cut = max_chars
        parts.append(remaining[:cut])
        remaining = remaining[cut:].lstrip("\n")
    if remaining:
        parts.append(remaining)
    return parts


async def run_in_batches(
    items: Sequence[T],
    batch_size: int,
    func: Callable[[T], Awaitable[R]],
) -> list[R]:
    """Run ``func`` over items, ``batch_size`` at a time; results keep input order."""
    results: list[R] = []
    for start in range(0, len(items), batch_size):
        batch = items[start : start + batch_size]
        results.extend(await asyncio.gather(*(func(item) for item in batch)))
    return results


def _failure_note(kind: str, reason: str) -> str:
    return f"[{kind} could not be read: {reason}]"


def _document_source(ref: DocumentRef, label: str, resolved: DocumentText) -> Source:
    if resolved.ok and resolved.text.strip():
        return Source(
            kind="document",
            label=label,
            content=resolved.text,
            locator=ref.url,
            requires_local_extraction=True,
        )
    reason = resolved.reason or "Document appears to be empty or contains no extractable text"
    return Source(
        kind="document",
        label=label,
        content=_failure_note("Document", reason),
        locator=ref.url,
        requires_local_extraction=True,
        failure_reason=reason,
    )


def _repository_sources(url: str, label: str, fetched: RepositoryContent, config: PipelineConfig) -> list[Source]:
    if not fetched.accessible or not fetched.content.strip():
        reason = fetched.reason or "Unable to access repository"
        return [
            Source(
                kind="project_link",
                label=label,
                content=_failure_note("Repository", reason),
                locator=url,
                is_repository=True,
                failure_reason=reason,
            )
        ]

    parts = split_text(fetched.content, config.repo_part_chars)
    if len(parts) == 1:
        return [
            Source(kind="project_link", label=label, content=parts[0], locator=url, is_repository=True)
        ]

    logger.info("repository_presplit label=%s chars=%s parts=%s", label, len(fetched.content), len(parts))
    return [
        Source(
            kind="project_link",
            label=part_label(label, index, len(parts)),
            content=part,
            locator=url,
            origin_label=label,
            part_index=index,
            part_count=len(parts),
            is_repository=True,
        )
        for index, part in enumerate(parts, start=1)
    ]


def _opaque_link_source(url: str, label: str) -> Source:
    return Source(
        kind="project_link",
        label=label,
        content=f"Project link: {url}\n(Only the link itself is available; its content was not fetched.)",
        locator=url,
    )


async def normalize_sources(
    free_text: str | None,
    document_refs: Sequence[DocumentRef],
    project_links: Sequence[str],
    *,
    config: PipelineConfig,
    document_resolver: DocumentResolver,
    repository_fetcher: RepositoryFetcher,
) -> list[Source]:
    """Turn raw candidate materials into labeled sources: free text, documents, then links."""
    sources: list[Source] = []
    taken: set[str] = set()

    if not is_placeholder_text(free_text):
        sources.append(
            Source(kind="free_text", label=unique_label(FREE_TEXT_LABEL, taken), content=(free_text or "").strip())
        )

    document_labels = [unique_label(ref.name.strip() or "Document", taken) for ref in document_refs]
    resolved_documents = await run_in_batches(
        list(document_refs), config.resolve_batch_size, document_resolver.resolve
    )
    for ref, label, resolved in zip(document_refs, document_labels, resolved_documents):
        sources.append(_document_source(ref, label, resolved))

    links: list[str] = []
    for raw in project_links:
        url = (raw or "").strip()
        if url and url not in links:
            links.append(url)
    link_labels = [unique_label(url, taken) for url in links]

    repository_urls = [url for url in links if is_repository_url(url)]
    fetched = await run_in_batches(repository_urls, config.resolve_batch_size, repository_fetcher.fetch)
    fetched_by_url = dict(zip(repository_urls, fetched))

    for url, label in zip(links, link_labels):
        if url in fetched_by_url:
            sources.extend(_repository_sources(url, label, fetched_by_url[url], config))
        else:
            sources.append(_opaque_link_source(url, label))

    logger.info(
        "sources_normalized total=%s documents=%s repositories=%s failed=%s",
        len(sources),
        len(document_refs),
        len(repository_urls),
        sum(1 for source in sources if source.failure_reason),
    )
    return sources
