"""Update models for database operations."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from taskmarket.domain.create_models import MAX_TITLE_LENGTH


class TaskUpdate(BaseModel):
    """Editable task fields. Unset fields are left unchanged."""

    title: str | None = None
    description: str | None = None
    location: str | None = None
    reward: float | None = Field(default=None, ge=0)
    deadline: datetime | None = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str | None) -> str | None:
        """Validate title is non-empty when provided."""
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty")
        if len(v) > MAX_TITLE_LENGTH:
            raise ValueError(f"Title too long (max {MAX_TITLE_LENGTH} characters)")
        return v
