from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Sequence

from jobmatch.ai.errors import CompletionRequestRejected
from jobmatch.ai.factory import get_completion_client
from jobmatch.ai.types import CompletionClient
from jobmatch.schemas.background import StructuredRecord
from jobmatch.sources.documents import HttpDocumentResolver
from jobmatch.sources.github import GitHubRepositoryFetcher
from jobmatch.sources.models import DocumentRef, Source
from jobmatch.sources.normalizer import DocumentResolver, RepositoryFetcher, normalize_sources

from .assembler import finalize_record
from .config import PipelineConfig, load_pipeline_config
from .extractor import extract_chunk, extract_single_shot, inaccessible_record, single_shot_messages
from .merger import merge_records
from .planner import ChunkPlan, build_chunks, plan_chunks
from .prompts import render_prompt

logger = logging.getLogger(__name__)


async def _extract_readable(
    client: CompletionClient,
    sources: Sequence[Source],
    config: PipelineConfig,
) -> tuple[list[StructuredRecord], ChunkPlan]:
    messages = single_shot_messages(sources, config)
    plan = plan_chunks(render_prompt(messages), sources, config)

    if not plan.is_chunked:
        try:
            return [await extract_single_shot(client, sources, config, messages)], plan
        except CompletionRequestRejected as exc:
            logger.warning("single_shot_rejected falling_back=chunked: %s", exc)
            plan = ChunkPlan(mode="chunked", chunks=build_chunks(sources, config), reasons=("request_rejected",))

    logger.info("chunked_extraction chunks=%s reasons=%s", len(plan.chunks), ",".join(plan.reasons))
    records = await asyncio.gather(*(extract_chunk(client, chunk, config) for chunk in plan.chunks))
    return list(records), plan


def _as_document_refs(document_refs: Sequence[DocumentRef | dict[str, Any]]) -> list[DocumentRef]:
    return [ref if isinstance(ref, DocumentRef) else DocumentRef.model_validate(ref) for ref in document_refs]


async def extract_skills_visualization(
    free_text: str | None,
    document_refs: Sequence[DocumentRef | dict[str, Any]] = (),
    project_links: Sequence[str] = (),
    *,
    config: PipelineConfig | None = None,
    client: CompletionClient | None = None,
    document_resolver: DocumentResolver | None = None,
    repository_fetcher: RepositoryFetcher | None = None,
    previous_skills: Sequence[str] = (),
) -> StructuredRecord:
    """Build one structured background record from a candidate's materials.

    Only configuration problems raise (``CompletionConfigError``); every
    unreadable source or failed request ends up in ``inaccessible_sources``.
    ``previous_skills`` carries skills from an earlier, possibly hand-edited,
    record so a re-run does not drop them.
    """
    started = time.perf_counter()
    config = config or load_pipeline_config()
    client = client or get_completion_client()
    document_resolver = document_resolver or HttpDocumentResolver()
    repository_fetcher = repository_fetcher or GitHubRepositoryFetcher(
        max_important_files=config.max_important_files,
        max_file_bytes=config.max_file_bytes,
    )

    sources = await normalize_sources(
        free_text,
        _as_document_refs(document_refs),
        project_links,
        config=config,
        document_resolver=document_resolver,
        repository_fetcher=repository_fetcher,
    )
    readable = [source for source in sources if not source.failure_reason]
    partials = [
        inaccessible_record(source.base_label, source.kind, source.failure_reason or "")
        for source in sources
        if source.failure_reason
    ]
    plan: ChunkPlan | None = None
    if readable:
        records, plan = await _extract_readable(client, readable, config)
        partials.extend(records)

    merged = merge_records(
        partials,
        max_evidence_words=config.max_evidence_words,
        preserved_skills=previous_skills,
    )
    final = await finalize_record(client, merged, config, preserved_skills=previous_skills)

    logger.info(
        json.dumps(
            {
                "event": "background_extraction_complete",
                "sources": len(sources),
                "mode": plan.mode if plan else "none",
                "chunks": len(plan.chunks) if plan else 0,
                "experiences": len(final.professional_experiences),
                "projects": len(final.projects),
                "skills": len(final.all_skills),
                "inaccessible": len(final.inaccessible_sources),
                "duration_ms": int((time.perf_counter() - started) * 1000),
            }
        )
    )
    return final
