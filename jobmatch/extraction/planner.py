from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal, Sequence

from jobmatch.sources.labels import part_label
from jobmatch.sources.models import Source
from jobmatch.sources.normalizer import split_text

from .config import PipelineConfig

logger = logging.getLogger(__name__)

PlanMode = Literal["single", "chunked"]


@dataclass(frozen=True)
class Chunk:
    content: str
    source_label: str
    source_kind: str
    origin_source_label: str
    part_index: int | None = None
    part_count: int | None = None


@dataclass(frozen=True)
class ChunkPlan:
    mode: PlanMode
    chunks: list[Chunk] = field(default_factory=list)
    reasons: tuple[str, ...] = ()

    @property
    def is_chunked(self) -> bool:
        return self.mode == "chunked"


def _source_chunks(source: Source, max_chars: int) -> list[Chunk]:
    parts = [source.content]
    if source.part_index is None:
        parts = split_text(source.content, max_chars)
    if len(parts) == 1:
        return [
            Chunk(
                content=source.content,
                source_label=source.label,
                source_kind=source.kind,
                origin_source_label=source.base_label,
                part_index=source.part_index,
                part_count=source.part_count,
            )
        ]

    logger.info("chunk_split label=%s chars=%s parts=%s", source.label, len(source.content), len(parts))
    return [
        Chunk(
            content=part,
            source_label=part_label(source.label, index, len(parts)),
            source_kind=source.kind,
            origin_source_label=source.base_label,
            part_index=index,
            part_count=len(parts),
        )
        for index, part in enumerate(parts, start=1)
    ]


def build_chunks(sources: Sequence[Source], config: PipelineConfig) -> list[Chunk]:
    """One chunk per source, or ``[Part i/N]`` chunks for sources above ``chunk_part_chars``.

    Pre-split repository parts are used as they are and keep their origin label.
    """
    return [chunk for source in sources for chunk in _source_chunks(source, config.chunk_part_chars)]


def chunking_reasons(prompt: str, sources: Sequence[Source], config: PipelineConfig) -> tuple[str, ...]:
    reasons: list[str] = []
    if len(prompt) > config.chunk_prompt_threshold:
        reasons.append("prompt_too_long")
    repository_links = {source.base_label for source in sources if source.is_repository}
    if len(repository_links) > config.max_repository_links_single_call:
        reasons.append("too_many_repositories")
    if any(source.requires_local_extraction for source in sources):
        reasons.append("local_document_extraction")
    return tuple(reasons)


def plan_chunks(prompt: str, sources: Sequence[Source], config: PipelineConfig) -> ChunkPlan:
    reasons = chunking_reasons(prompt, sources, config)
    if not reasons:
        return ChunkPlan(mode="single")
    return ChunkPlan(mode="chunked", chunks=build_chunks(sources, config), reasons=reasons)
