from __future__ import annotations

import logging
from typing import Sequence

from pydantic import ValidationError

from jobmatch.ai.errors import (
    CompletionConfigError,
    CompletionError,
    CompletionRateLimited,
    CompletionRequestRejected,
)
from jobmatch.ai.retry import complete_with_backoff
from jobmatch.ai.types import ChatMessage, CompletionClient
from jobmatch.schemas.background import InaccessibleSource, StructuredRecord
from jobmatch.sources.models import Source

from .config import PipelineConfig
from .planner import Chunk
from .prompts import (
    EXTRACTION_SCHEMA_NAME,
    build_extraction_messages,
    extraction_schema,
    format_source_block,
)

logger = logging.getLogger(__name__)


def inaccessible_record(source_name: str, source_type: str, reason: str) -> StructuredRecord:
    return StructuredRecord(
        inaccessible_sources=[InaccessibleSource(source_name=source_name, source_type=source_type, reason=reason)]
    )


def failure_reason(exc: Exception, config: PipelineConfig) -> str:
    if isinstance(exc, CompletionRateLimited):
        return f"Completion service rate limit exceeded after {config.rate_limit_retries} retries"
    if isinstance(exc, CompletionError):
        return f"Extraction failed ({exc.code}): {exc}"
    if isinstance(exc, ValidationError):
        return f"Extraction returned malformed data ({exc.error_count()} validation errors)"
    return f"Extraction failed: {exc}"


def chunk_messages(chunk: Chunk, config: PipelineConfig) -> list[ChatMessage]:
    block = format_source_block(
        chunk.source_label,
        chunk.source_kind,
        chunk.content,
        part_index=chunk.part_index,
        part_count=chunk.part_count,
    )
    return build_extraction_messages([block], max_evidence_words=config.max_evidence_words)


def single_shot_messages(sources: Sequence[Source], config: PipelineConfig) -> list[ChatMessage]:
    blocks = [
        format_source_block(
            source.label,
            source.kind,
            source.content,
            part_index=source.part_index,
            part_count=source.part_count,
        )
        for source in sources
    ]
    return build_extraction_messages(blocks, max_evidence_words=config.max_evidence_words)


def _scope_to_chunk(record: StructuredRecord, chunk: Chunk) -> StructuredRecord:
    # Everything in a chunk's answer comes from that chunk's single source.
    for entry in [*record.professional_experiences, *record.projects]:
        if not entry.source_names:
            entry.source_names = [chunk.source_label]
    for education in record.education:
        if not education.source_names:
            education.source_names = [chunk.source_label]
    for item in record.inaccessible_sources:
        item.source_name = chunk.origin_source_label
        if item.source_type == "unknown":
            item.source_type = chunk.source_kind
    return record


async def _request(
    client: CompletionClient,
    messages: Sequence[ChatMessage],
    config: PipelineConfig,
    label: str,
) -> StructuredRecord:
    payload = await complete_with_backoff(
        client,
        messages,
        schema=extraction_schema(),
        schema_name=EXTRACTION_SCHEMA_NAME,
        retries=config.rate_limit_retries,
        base_delay_s=config.backoff_base_s,
        temperature=config.temperature,
        label=label,
    )
    return StructuredRecord.model_validate(payload)


async def extract_chunk(client: CompletionClient, chunk: Chunk, config: PipelineConfig) -> StructuredRecord:
    """Extract one chunk. Never raises for data-level problems; a failure becomes an inaccessible source."""
    try:
        record = await _request(client, chunk_messages(chunk, config), config, chunk.source_label)
    except CompletionConfigError:
        raise
    except (CompletionError, ValidationError) as exc:
        logger.warning(
            "chunk_extraction_failed source=%s error=%s: %s",
            chunk.source_label,
            type(exc).__name__,
            exc,
        )
        return inaccessible_record(chunk.origin_source_label, chunk.source_kind, failure_reason(exc, config))

    logger.info(
        "chunk_extracted source=%s experiences=%s projects=%s",
        chunk.source_label,
        len(record.professional_experiences),
        len(record.projects),
    )
    return _scope_to_chunk(record, chunk)


async def extract_single_shot(
    client: CompletionClient,
    sources: Sequence[Source],
    config: PipelineConfig,
    messages: Sequence[ChatMessage] | None = None,
) -> StructuredRecord:
    """Fast path: every source in one request.

    ``CompletionRequestRejected`` propagates so the caller can fall back to
    chunking; any other failure marks every source inaccessible.
    """
    request_messages = list(messages) if messages is not None else single_shot_messages(sources, config)
    try:
        return await _request(client, request_messages, config, "single_shot")
    except (CompletionConfigError, CompletionRequestRejected):
        raise
    except (CompletionError, ValidationError) as exc:
        logger.warning("single_shot_extraction_failed error=%s: %s", type(exc).__name__, exc)
        reason = failure_reason(exc, config)

    return StructuredRecord(
        inaccessible_sources=[
            InaccessibleSource(source_name=source.base_label, source_type=source.kind, reason=reason)
            for source in sources
        ]
    )
