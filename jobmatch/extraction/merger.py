"""Merge partial background records into one.

Every list-valued entity field is merged through ``merge_keyed`` with an
explicit identity key and one of a few field strategies:

- ``union_text``: bullets, de-duplicated by case-insensitive exact text.
- ``union_skills``: skills keyed by canonical lowercase name, evidence
  quotes unioned (case-sensitive).
- ``union_clusters``: clusters keyed by lowercase name, members unioned.
- ``union_names``: source names with ``[Part i/N]`` suffixes stripped.
- ``first_present``: scalars keep the first non-empty value.

Inputs are never mutated.
"""

from __future__ import annotations

import logging
from typing import Callable, Hashable, Iterable, Sequence, TypeVar

from pydantic import BaseModel

from jobmatch.schemas.background import (
    AwardEntry,
    DateRange,
    EducationEntry,
    EntityBase,
    ExperienceEntry,
    InaccessibleSource,
    NonXYZBullet,
    ProjectEntry,
    SkillCluster,
    SkillEvidence,
    StructuredRecord,
    XYZBullet,
)
from jobmatch.sources.labels import strip_part_suffix

logger = logging.getLogger(__name__)

T = TypeVar("T")
B = TypeVar("B", bound=BaseModel)
E = TypeVar("E", bound=EntityBase)


def merge_keyed(items: Iterable[T], *, key: Callable[[T], Hashable], combine: Callable[[T, T], T]) -> list[T]:
    merged: dict[Hashable, T] = {}
    for item in items:
        item_key = key(item)
        merged[item_key] = combine(merged[item_key], item) if item_key in merged else item
    return list(merged.values())


def first_present(current: T, incoming: T) -> T:
    if current is None or current == "" or current == []:
        return incoming
    return current


def _text_key(value: str) -> str:
    return " ".join((value or "").split()).lower()


def clip_quote(quote: str, max_words: int) -> str:
    words = quote.split()
    if len(words) <= max_words:
        return " ".join(words)
    return " ".join(words[:max_words])


class SkillCanonicalizer:
    """Lowercases skill mentions and resolves them through the alias map."""

    def __init__(self, alias_map: dict[str, str]):
        self._aliases = {
            _text_key(raw): _text_key(canonical)
            for raw, canonical in alias_map.items()
            if _text_key(raw) and _text_key(canonical)
        }

    def __call__(self, skill: str) -> str:
        name = _text_key(skill)
        chain = [name]
        while True:
            target = self._aliases.get(name)
            if target is None or target == name:
                return name
            if target in chain:
                # Alias cycle: every member resolves to the same name.
                return min(chain[chain.index(target) :])
            chain.append(target)
            name = target


def union_text(current: Sequence[B], incoming: Sequence[B], *, rank: Callable[[B], int] = lambda _: 0) -> list[B]:
    """Union bullets by case-insensitive text; on collision keep the better-ranked (lower) one."""

    def pick(a: B, b: B) -> B:
        return min(a, b, key=lambda item: (rank(item), item.model_dump_json()))

    return merge_keyed(
        [*current, *incoming],
        key=lambda item: _text_key(getattr(item, "text")),
        combine=pick,
    )


def _union_quotes(current: Sequence[str], incoming: Sequence[str]) -> list[str]:
    quotes: list[str] = []
    for quote in [*current, *incoming]:
        if quote and quote not in quotes:
            quotes.append(quote)
    return quotes


def union_skills(
    current: Sequence[SkillEvidence],
    incoming: Sequence[SkillEvidence],
    canonical: Callable[[str], str],
) -> list[SkillEvidence]:
    normalized = [
        SkillEvidence(skill=canonical(item.skill), evidence=list(item.evidence))
        for item in [*current, *incoming]
        if canonical(item.skill)
    ]
    return merge_keyed(
        normalized,
        key=lambda item: item.skill,
        combine=lambda a, b: SkillEvidence(skill=a.skill, evidence=_union_quotes(a.evidence, b.evidence)),
    )


def union_clusters(
    current: Sequence[SkillCluster],
    incoming: Sequence[SkillCluster],
    canonical: Callable[[str], str],
) -> list[SkillCluster]:
    normalized = [
        SkillCluster(
            cluster_name=" ".join(cluster.cluster_name.split()),
            skills=sorted({canonical(skill) for skill in cluster.skills if canonical(skill)}),
        )
        for cluster in [*current, *incoming]
        if cluster.cluster_name.strip()
    ]
    return merge_keyed(
        normalized,
        key=lambda cluster: _text_key(cluster.cluster_name),
        combine=lambda a, b: SkillCluster(
            cluster_name=min(a.cluster_name, b.cluster_name),
            skills=sorted(set(a.skills) | set(b.skills)),
        ),
    )


def union_names(current: Sequence[str], incoming: Sequence[str]) -> list[str]:
    return sorted({strip_part_suffix(name) for name in [*current, *incoming] if strip_part_suffix(name)})


def _merge_date_range(current: DateRange, incoming: DateRange) -> DateRange:
    return DateRange(
        start=first_present(current.start, incoming.start),
        end=first_present(current.end, incoming.end),
    )


def experience_key(entry: ExperienceEntry) -> tuple[str, str]:
    return _text_key(entry.company), _text_key(entry.title)


def project_key(entry: ProjectEntry) -> str:
    return _text_key(entry.name)


def education_key(entry: EducationEntry) -> tuple[str, str]:
    return _text_key(entry.school), _text_key(entry.degree)


def award_key(entry: AwardEntry) -> tuple[str, str]:
    return _text_key(entry.name), _text_key(entry.issuer_or_venue)


def _entity_combiner(
    canonical: Callable[[str], str],
    scalars: tuple[str, ...],
) -> Callable[[E, E], E]:
    def combine(current: E, incoming: E) -> E:
        update = {
            "source_names": union_names(current.source_names, incoming.source_names),
            "xyz_bullets": union_text(current.xyz_bullets, incoming.xyz_bullets, rank=lambda b: len(b.missing)),
            "non_xyz_bullets": union_text(current.non_xyz_bullets, incoming.non_xyz_bullets),
            "hard_skills": union_skills(current.hard_skills, incoming.hard_skills, canonical),
            "soft_skills": union_skills(current.soft_skills, incoming.soft_skills, canonical),
            "skill_clusters": union_clusters(current.skill_clusters, incoming.skill_clusters, canonical),
            "date_range": _merge_date_range(current.date_range, incoming.date_range),
        }
        for name in scalars:
            update[name] = first_present(getattr(current, name), getattr(incoming, name))
        return current.model_copy(update=update)

    return combine


def _normalize_entity(entry: E, canonical: Callable[[str], str], max_evidence_words: int) -> E:
    """Self-merge an entity so a single record gets the same clean-up as a merged one."""

    def clipped(skills: Sequence[SkillEvidence]) -> list[SkillEvidence]:
        return [
            SkillEvidence(skill=item.skill, evidence=[clip_quote(q, max_evidence_words) for q in item.evidence])
            for item in skills
        ]

    return entry.model_copy(
        update={
            "source_names": union_names(entry.source_names, []),
            "xyz_bullets": union_text(entry.xyz_bullets, [], rank=lambda b: len(b.missing)),
            "non_xyz_bullets": union_text(entry.non_xyz_bullets, []),
            "hard_skills": union_skills(clipped(entry.hard_skills), [], canonical),
            "soft_skills": union_skills(clipped(entry.soft_skills), [], canonical),
            "skill_clusters": union_clusters(entry.skill_clusters, [], canonical),
        }
    )


def _enforce_evidence(entry: E) -> E:
    hard = [item for item in entry.hard_skills if item.evidence]
    soft = [item for item in entry.soft_skills if item.evidence]
    evidenced = {item.skill for item in [*hard, *soft]}
    clusters = []
    for cluster in entry.skill_clusters:
        members = [skill for skill in cluster.skills if skill in evidenced]
        if members:
            clusters.append(SkillCluster(cluster_name=cluster.cluster_name, skills=members))
    return entry.model_copy(update={"hard_skills": hard, "soft_skills": soft, "skill_clusters": clusters})


def _merge_entities(
    entries: Iterable[E],
    *,
    key: Callable[[E], Hashable],
    canonical: Callable[[str], str],
    scalars: tuple[str, ...],
    max_evidence_words: int,
) -> list[E]:
    normalized = [_normalize_entity(entry, canonical, max_evidence_words) for entry in entries]
    merged = merge_keyed(normalized, key=key, combine=_entity_combiner(canonical, scalars))
    return [_enforce_evidence(entry) for entry in merged]


def _combine_education(current: EducationEntry, incoming: EducationEntry) -> EducationEntry:
    return current.model_copy(
        update={
            "source_names": union_names(current.source_names, incoming.source_names),
            "major": first_present(current.major, incoming.major),
            "year": first_present(current.year, incoming.year),
            "gpa": first_present(current.gpa, incoming.gpa),
        }
    )


def _combine_awards(current: AwardEntry, incoming: AwardEntry) -> AwardEntry:
    return current.model_copy(update={"evidence": _union_quotes(current.evidence, incoming.evidence)})


def _merge_alias_maps(records: Sequence[StructuredRecord]) -> dict[str, str]:
    aliases: dict[str, str] = {}
    for record in records:
        aliases.update(record.skill_alias_map)
    return aliases


def _collect_all_skills(
    records: Sequence[StructuredRecord],
    entities: Sequence[EntityBase],
    canonical: Callable[[str], str],
    preserved: Iterable[str] = (),
) -> list[str]:
    evidenced: set[str] = set()
    for entry in entities:
        evidenced.update(item.skill for item in [*entry.hard_skills, *entry.soft_skills])

    # A skill only ever seen without evidence must not resurface through all_skills.
    unevidenced: set[str] = set()
    for record in records:
        for entry in [*record.professional_experiences, *record.projects]:
            for item in [*entry.hard_skills, *entry.soft_skills]:
                if not item.evidence:
                    unevidenced.add(canonical(item.skill))
    unevidenced -= evidenced

    listed = {canonical(skill) for record in records for skill in record.all_skills}
    kept = {canonical(skill) for skill in preserved}
    return sorted(skill for skill in ((evidenced | listed) - unevidenced) | kept if skill)


def _close_source_accounting(
    inaccessible: list[InaccessibleSource],
    contributing: set[str],
) -> list[InaccessibleSource]:
    kept: list[InaccessibleSource] = []
    for item in inaccessible:
        if item.source_name in contributing:
            logger.warning(
                "inaccessible_source_superseded source=%s reason=%s",
                item.source_name,
                item.reason,
            )
            continue
        kept.append(item)
    return kept


def merge_records(
    records: Sequence[StructuredRecord],
    *,
    max_evidence_words: int = 20,
    preserved_skills: Iterable[str] = (),
) -> StructuredRecord:
    """Merge partial records (one per chunk) into one record.

    ``preserved_skills`` (user-added skills from an earlier record) always end
    up in ``all_skills``, even when a chunk mentions them without evidence.

    The resulting entity set does not depend on input order; on conflicting
    scalar values the earlier record wins, and the last reported reason wins
    for an inaccessible source.
    """
    records = [record.model_copy(deep=True) for record in records]
    alias_map = _merge_alias_maps(records)
    canonical = SkillCanonicalizer(alias_map)

    experiences = _merge_entities(
        (entry for record in records for entry in record.professional_experiences),
        key=experience_key,
        canonical=canonical,
        scalars=("id", "location"),
        max_evidence_words=max_evidence_words,
    )
    projects = _merge_entities(
        (entry for record in records for entry in record.projects),
        key=project_key,
        canonical=canonical,
        scalars=("id", "url"),
        max_evidence_words=max_evidence_words,
    )

    education = merge_keyed(
        (
            entry.model_copy(update={"source_names": union_names(entry.source_names, [])})
            for record in records
            for entry in record.education
        ),
        key=education_key,
        combine=_combine_education,
    )

    awards = merge_keyed(
        (
            entry.model_copy(
                update={"evidence": _union_quotes([clip_quote(q, max_evidence_words) for q in entry.evidence], [])}
            )
            for record in records
            for entry in record.awards_certificates_publications
        ),
        key=award_key,
        combine=_combine_awards,
    )

    inaccessible = merge_keyed(
        (
            item.model_copy(update={"source_name": strip_part_suffix(item.source_name)})
            for record in records
            for item in record.inaccessible_sources
            if strip_part_suffix(item.source_name)
        ),
        key=lambda item: item.source_name,
        combine=lambda current, incoming: incoming,
    )

    merged = StructuredRecord(
        skill_alias_map=alias_map,
        education=education,
        professional_experiences=experiences,
        projects=projects,
        awards_certificates_publications=awards,
        all_skills=_collect_all_skills(records, [*experiences, *projects], canonical, preserved_skills),
    )
    merged.inaccessible_sources = _close_source_accounting(inaccessible, merged.contributing_source_names())
    return merged
