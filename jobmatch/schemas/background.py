from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_XYZ_COMPONENTS = ("X", "Y", "Z")


def _list_or_empty(value: Any) -> Any:
    return [] if value is None else value


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _alias_mapping(value: Any) -> Any:
    if value is None:
        return {}
    # Some models answer with [{"raw": ..., "canonical": ...}] instead of a mapping.
    if isinstance(value, list):
        mapping: dict[str, str] = {}
        for item in value:
            if isinstance(item, dict) and item.get("raw") and item.get("canonical"):
                mapping[str(item["raw"])] = str(item["canonical"])
        return mapping
    return value


class _RecordModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class InaccessibleSource(_RecordModel):
    source_name: str
    source_type: str = "unknown"
    reason: str = ""


class DateRange(_RecordModel):
    start: str = ""
    end: str | None = None

    @field_validator("start", mode="before")
    @classmethod
    def _start_as_text(cls, value: Any) -> str:
        return _optional_text(value) or ""

    @field_validator("end", mode="before")
    @classmethod
    def _end_as_text(cls, value: Any) -> str | None:
        return _optional_text(value)


class XYZBullet(_RecordModel):
    """Accomplished X, measured by Y, by doing Z. ``missing`` names the absent parts."""

    text: str
    is_xyz: bool = True
    missing: list[str] = Field(default_factory=list)

    @field_validator("missing", mode="before")
    @classmethod
    def _normalize_missing(cls, value: Any) -> list[str]:
        seen: list[str] = []
        for item in _list_or_empty(value):
            component = str(item).strip().upper()[:1]
            if component in _XYZ_COMPONENTS and component not in seen:
                seen.append(component)
        return sorted(seen)


class NonXYZBullet(_RecordModel):
    text: str
    reason_not_xyz: str = ""


class SkillEvidence(_RecordModel):
    skill: str
    evidence: list[str] = Field(default_factory=list)

    @field_validator("skill")
    @classmethod
    def _strip_skill(cls, value: str) -> str:
        return value.strip()

    @field_validator("evidence", mode="before")
    @classmethod
    def _clean_evidence(cls, value: Any) -> list[str]:
        quotes = [str(item).strip() for item in _list_or_empty(value)]
        return [quote for quote in quotes if quote]


class SkillCluster(_RecordModel):
    cluster_name: str
    skills: list[str] = Field(default_factory=list)

    @field_validator("skills", mode="before")
    @classmethod
    def _skills_list(cls, value: Any) -> Any:
        return _list_or_empty(value)


class EntityBase(_RecordModel):
    id: str | None = None
    date_range: DateRange = Field(default_factory=DateRange)
    source_names: list[str] = Field(default_factory=list)
    xyz_bullets: list[XYZBullet] = Field(default_factory=list)
    non_xyz_bullets: list[NonXYZBullet] = Field(default_factory=list)
    hard_skills: list[SkillEvidence] = Field(default_factory=list)
    soft_skills: list[SkillEvidence] = Field(default_factory=list)
    skill_clusters: list[SkillCluster] = Field(default_factory=list)

    @field_validator(
        "source_names",
        "xyz_bullets",
        "non_xyz_bullets",
        "hard_skills",
        "soft_skills",
        "skill_clusters",
        mode="before",
    )
    @classmethod
    def _lists_default_empty(cls, value: Any) -> Any:
        return _list_or_empty(value)

    @field_validator("date_range", mode="before")
    @classmethod
    def _date_range_default(cls, value: Any) -> Any:
        return {} if value is None else value


class ExperienceEntry(EntityBase):
    company: str
    title: str
    location: str | None = None


class ProjectEntry(EntityBase):
    name: str
    url: str | None = None


class EducationEntry(_RecordModel):
    school: str
    degree: str = ""
    major: str | None = None
    year: str | None = None
    gpa: str | None = None
    source_names: list[str] = Field(default_factory=list)

    @field_validator("major", "year", "gpa", mode="before")
    @classmethod
    def _optional_as_text(cls, value: Any) -> str | None:
        return _optional_text(value)

    @field_validator("source_names", mode="before")
    @classmethod
    def _names_list(cls, value: Any) -> Any:
        return _list_or_empty(value)


class AwardEntry(_RecordModel):
    name: str
    type: str = "award"
    issuer_or_venue: str = ""
    date: str | None = None
    evidence: list[str] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> str:
        normalized = (_optional_text(value) or "award").lower()
        if normalized not in {"award", "certificate", "publication"}:
            return "award"
        return normalized

    @field_validator("issuer_or_venue", mode="before")
    @classmethod
    def _issuer_text(cls, value: Any) -> str:
        return _optional_text(value) or ""

    @field_validator("date", mode="before")
    @classmethod
    def _date_text(cls, value: Any) -> str | None:
        return _optional_text(value)

    @field_validator("evidence", mode="before")
    @classmethod
    def _evidence_list(cls, value: Any) -> Any:
        return _list_or_empty(value)


class StructuredRecord(_RecordModel):
    inaccessible_sources: list[InaccessibleSource] = Field(default_factory=list)
    skill_alias_map: dict[str, str] = Field(default_factory=dict)
    education: list[EducationEntry] = Field(default_factory=list)
    professional_experiences: list[ExperienceEntry] = Field(default_factory=list)
    projects: list[ProjectEntry] = Field(default_factory=list)
    awards_certificates_publications: list[AwardEntry] = Field(default_factory=list)
    all_skills: list[str] = Field(default_factory=list)

    @field_validator(
        "inaccessible_sources",
        "education",
        "professional_experiences",
        "projects",
        "awards_certificates_publications",
        "all_skills",
        mode="before",
    )
    @classmethod
    def _lists_default_empty(cls, value: Any) -> Any:
        return _list_or_empty(value)

    @field_validator("skill_alias_map", mode="before")
    @classmethod
    def _alias_map_default(cls, value: Any) -> Any:
        return _alias_mapping(value)

    def contributing_source_names(self) -> set[str]:
        names: set[str] = set()
        for entry in [*self.professional_experiences, *self.projects]:
            names.update(entry.source_names)
        for education in self.education:
            names.update(education.source_names)
        return names


class NormalizationResponse(_RecordModel):
    """Shape requested from the final normalization pass; education and inaccessible sources are not sent."""

    skill_alias_map: dict[str, str] = Field(default_factory=dict)
    professional_experiences: list[ExperienceEntry] = Field(default_factory=list)
    projects: list[ProjectEntry] = Field(default_factory=list)
    awards_certificates_publications: list[AwardEntry] = Field(default_factory=list)
    all_skills: list[str] = Field(default_factory=list)

    @field_validator(
        "professional_experiences",
        "projects",
        "awards_certificates_publications",
        "all_skills",
        mode="before",
    )
    @classmethod
    def _lists_default_empty(cls, value: Any) -> Any:
        return _list_or_empty(value)

    @field_validator("skill_alias_map", mode="before")
    @classmethod
    def _alias_map_default(cls, value: Any) -> Any:
        return _alias_mapping(value)
