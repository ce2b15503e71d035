from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, Sequence

from jobmatch.ai.types import ChatMessage
from jobmatch.schemas.background import NormalizationResponse, StructuredRecord

EXTRACTION_SCHEMA_NAME = "structured_background"
NORMALIZATION_SCHEMA_NAME = "normalized_background"


def _extraction_system(max_evidence_words: int) -> str:
    return (
        "You extract a candidate's professional background from the materials provided. "
        "Rules:\n"
        "1. Extract only what the text evidences. Never invent employers, titles, dates, metrics or skills.\n"
        "2. Rewrite accomplishment statements as 'Accomplished [X] as measured by [Y], by doing [Z]' whenever "
        "possible and put them in xyz_bullets. If X, Y or Z cannot be derived from the text, still write the "
        "bullet, set is_xyz to false and list the absent letters in missing (e.g. [\"Y\"]). Statements that "
        "are not accomplishments go to non_xyz_bullets with reason_not_xyz.\n"
        "3. Skill names must be canonical and lowercase (e.g. 'JS' and 'Javascript' -> 'javascript'). Report "
        "every raw mention you normalized in skill_alias_map as raw -> canonical.\n"
        f"4. Every hard or soft skill needs at least one verbatim evidence quote of at most {max_evidence_words} "
        "words copied from the source. Omit skills you cannot quote.\n"
        "5. Group an entry's skills into skill_clusters where a natural grouping exists.\n"
        "6. In source_names use the exact source name from the SOURCE header the fact came from.\n"
        "7. If a source cannot be meaningfully analyzed (unreadable, empty, unrelated binary content, access "
        "error notes), add it to inaccessible_sources with source_name, source_type and a short reason instead "
        "of guessing.\n"
        "8. all_skills lists every canonical skill referenced anywhere in the record.\n"
        "Return JSON only, matching the provided schema."
    )


def format_source_block(label: str, kind: str, content: str, *, part_index: int | None = None, part_count: int | None = None) -> str:
    header = f"=== SOURCE: {label} (type: {kind}) ==="
    if part_index and part_count:
        header += f"\n(This is part {part_index} of {part_count} of a larger source; extract what this part evidences.)"
    return f"{header}\n{content.strip()}\n=== END SOURCE ==="


def build_extraction_messages(source_blocks: Sequence[str], *, max_evidence_words: int) -> list[ChatMessage]:
    body = "\n\n".join(source_blocks)
    user = f"CANDIDATE MATERIALS:\n\n{body}\n\nSTRUCTURED BACKGROUND (JSON):"
    return [
        ChatMessage(role="system", content=_extraction_system(max_evidence_words)),
        ChatMessage(role="user", content=user),
    ]


def render_prompt(messages: Sequence[ChatMessage]) -> str:
    return "\n\n".join(message.content for message in messages)


def build_normalization_messages(payload: dict[str, Any]) -> list[ChatMessage]:
    system = (
        "You receive a candidate background record that was assembled by merging several partial "
        "extractions. Normalize it without adding facts:\n"
        "1. Canonicalize skill names to one lowercase form across the whole record, update skill_alias_map "
        "(raw -> canonical) and all_skills accordingly.\n"
        "2. Make casing of companies, titles and project names consistent.\n"
        "3. Remove exact duplicate bullets, skills and evidence quotes inside an entry. Do not merge entries "
        "that are different roles or projects.\n"
        "4. Keep every entry, bullet, evidence quote, date and source name that is present; never drop an "
        "entry and never invent one.\n"
        "Return JSON only, matching the provided schema."
    )
    user = f"MERGED RECORD:\n{json.dumps(payload, ensure_ascii=False)}\n\nNORMALIZED RECORD (JSON):"
    return [
        ChatMessage(role="system", content=system),
        ChatMessage(role="user", content=user),
    ]


@lru_cache(maxsize=1)
def extraction_schema() -> dict[str, Any]:
    return StructuredRecord.model_json_schema()


@lru_cache(maxsize=1)
def normalization_schema() -> dict[str, Any]:
    return NormalizationResponse.model_json_schema()
