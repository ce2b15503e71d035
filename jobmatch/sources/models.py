from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

SOURCE_KINDS = {"free_text", "document", "project_link"}


class DocumentRef(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    url: str = Field(min_length=1, max_length=4096)


class DocumentText(BaseModel):
    ok: bool
    text: str = ""
    reason: str | None = None


class RepositoryContent(BaseModel):
    accessible: bool
    content: str = ""
    reason: str | None = None


class Source(BaseModel):
    kind: str
    label: str
    content: str
    locator: str | None = None
    origin_label: str | None = None
    part_index: int | None = None
    part_count: int | None = None
    is_repository: bool = False
    requires_local_extraction: bool = False
    failure_reason: str | None = None

    @field_validator("kind")
    @classmethod
    def _validate_kind(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in SOURCE_KINDS:
            raise ValueError("kind must be one of: free_text, document, project_link")
        return normalized

    @property
    def base_label(self) -> str:
        return self.origin_label or self.label
