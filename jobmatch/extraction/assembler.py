from __future__ import annotations

import logging
from typing import Any, Sequence

from pydantic import ValidationError

from jobmatch.ai.errors import CompletionError
from jobmatch.ai.retry import complete_with_backoff
from jobmatch.ai.types import CompletionClient
from jobmatch.schemas.background import NormalizationResponse, StructuredRecord

from .config import PipelineConfig
from .merger import merge_records
from .prompts import NORMALIZATION_SCHEMA_NAME, build_normalization_messages, normalization_schema

logger = logging.getLogger(__name__)

# Education and inaccessible sources are copied forward, never sent for normalization.
_NORMALIZED_FIELDS = {
    "skill_alias_map",
    "professional_experiences",
    "projects",
    "awards_certificates_publications",
    "all_skills",
}


def normalization_payload(merged: StructuredRecord) -> dict[str, Any]:
    return merged.model_dump(include=_NORMALIZED_FIELDS)


def _lost_everything(merged: StructuredRecord, response: NormalizationResponse) -> bool:
    had_entities = bool(merged.professional_experiences or merged.projects)
    has_entities = bool(response.professional_experiences or response.projects)
    return had_entities and not has_entities


async def finalize_record(
    client: CompletionClient,
    merged: StructuredRecord,
    config: PipelineConfig,
    *,
    preserved_skills: Sequence[str] = (),
) -> StructuredRecord:
    """Best-effort normalization pass. Any failure returns the merged record unchanged.

    Skills the service renamed are replaced, not duplicated; only
    ``preserved_skills`` are forced back into ``all_skills``.
    """
    unchanged = merged.model_copy(deep=True)
    if not config.final_assembly_enabled:
        return unchanged
    if not (merged.professional_experiences or merged.projects or merged.awards_certificates_publications):
        return unchanged

    try:
        payload = await complete_with_backoff(
            client,
            build_normalization_messages(normalization_payload(merged)),
            schema=normalization_schema(),
            schema_name=NORMALIZATION_SCHEMA_NAME,
            retries=config.rate_limit_retries,
            base_delay_s=config.backoff_base_s,
            temperature=config.temperature,
            label="final_assembly",
        )
        response = NormalizationResponse.model_validate(payload)
    except (CompletionError, ValidationError) as exc:
        logger.warning("final_assembly_failed error=%s: %s", type(exc).__name__, exc)
        return unchanged

    if _lost_everything(merged, response):
        logger.warning("final_assembly_failed error=EmptyResponse: normalization returned no entries")
        return unchanged

    normalized = StructuredRecord(
        inaccessible_sources=unchanged.inaccessible_sources,
        skill_alias_map=response.skill_alias_map,
        education=unchanged.education,
        professional_experiences=response.professional_experiences,
        projects=response.projects,
        awards_certificates_publications=response.awards_certificates_publications,
        all_skills=response.all_skills,
    )
    carried = StructuredRecord(skill_alias_map=unchanged.skill_alias_map)
    return merge_records(
        [carried, normalized],
        max_evidence_words=config.max_evidence_words,
        preserved_skills=preserved_skills,
    )
