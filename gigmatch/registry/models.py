"""Input models for creating and editing saved queries."""

from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from gigmatch.domain.models import ListingKind, normalize_skills


def _coerce_kind(v: Any) -> Any:
    if isinstance(v, str):
        return ListingKind.from_search_type(v)
    return v


def _strip_optional(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    stripped = v.strip()
    return stripped if stripped else None


class SavedQueryDraft(BaseModel):
    """Everything an owner supplies when saving a search.

    ``kind`` is the kind of listing to watch; the searcher-facing values
    ``jobs`` and ``talent`` are accepted too.
    """

    name: str = Field(..., max_length=255)
    kind: ListingKind
    query: Optional[str] = Field(None, max_length=2000)
    skills: List[str] = Field(default_factory=list)
    rate_min: Optional[int] = Field(None, ge=0)
    rate_max: Optional[int] = Field(None, ge=0)
    remote_only: bool = False
    location: Optional[str] = Field(None, max_length=255)
    notify_by_email: bool = True

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("name cannot be empty or whitespace-only")
        return v.strip()

    @field_validator("kind", mode="before")
    @classmethod
    def parse_kind(cls, v: Any) -> Any:
        return _coerce_kind(v)

    @field_validator("query", "location")
    @classmethod
    def strip_optional_text(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)

    @field_validator("skills", mode="before")
    @classmethod
    def normalize_skill_tags(cls, v: Any) -> List[str]:
        if isinstance(v, str):
            v = v.split(",")
        return normalize_skills(v)

    @model_validator(mode="after")
    def check_rate_bounds(self):
        if self.rate_min is not None and self.rate_max is not None and self.rate_min > self.rate_max:
            raise ValueError("rate_min must be <= rate_max")
        return self


class SavedQueryChanges(BaseModel):
    """Partial update of a saved query; unset fields are left alone."""

    name: Optional[str] = Field(None, max_length=255)
    kind: Optional[ListingKind] = None
    query: Optional[str] = Field(None, max_length=2000)
    skills: Optional[List[str]] = None
    rate_min: Optional[int] = Field(None, ge=0)
    rate_max: Optional[int] = Field(None, ge=0)
    remote_only: Optional[bool] = None
    location: Optional[str] = Field(None, max_length=255)
    notify_by_email: Optional[bool] = None
    active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("name cannot be empty or whitespace-only")
        return v.strip() if v is not None else None

    @field_validator("kind", mode="before")
    @classmethod
    def parse_kind(cls, v: Any) -> Any:
        return _coerce_kind(v)

    @field_validator("query", "location")
    @classmethod
    def strip_optional_text(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)

    @field_validator("skills", mode="before")
    @classmethod
    def normalize_skill_tags(cls, v: Any) -> Optional[List[str]]:
        if v is None:
            return None
        if isinstance(v, str):
            v = v.split(",")
        return normalize_skills(v)
