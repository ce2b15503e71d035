from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from jobmatch.sources.models import DocumentRef


class BackgroundExtractRequest(BaseModel):
    resume_text: str = Field(default="", max_length=200_000)
    documents: list[DocumentRef] = Field(default_factory=list, max_length=20)
    project_links: list[str] = Field(default_factory=list, max_length=30)
    previous_skills: list[str] = Field(default_factory=list, max_length=500)

    @field_validator("project_links", "previous_skills")
    @classmethod
    def _strip_blank(cls, value: list[str]) -> list[str]:
        return [item.strip() for item in value if item and item.strip()]
