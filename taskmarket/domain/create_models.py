"""Pydantic models for creating records in database."""

import re
from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator

from taskmarket.domain.task import TaskType


# Constants for validation
MAX_USERNAME_LENGTH = 50
MAX_TITLE_LENGTH = 120


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat()


class TaskCreate(BaseModel):
    """Pydantic model for creating a task record."""

    title: str = Field(..., description="Task title")
    description: str = Field(default="", description="Detailed task description")
    location: str = Field(default="", description="Where the task takes place")
    reward: float = Field(default=0, ge=0, description="Offered reward")
    deadline: datetime = Field(..., description="Deadline for completion")
    task_type: TaskType = Field(default=TaskType.NORMAL, description="normal or joint")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate title is non-empty and reasonably short."""
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty")
        if len(v) > MAX_TITLE_LENGTH:
            raise ValueError(f"Title too long (max {MAX_TITLE_LENGTH} characters)")
        return v


class ProfileCreate(BaseModel):
    """Pydantic model for creating a profile record."""

    username: str = Field(..., description="Display name")

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        """Validate username - allows Unicode letters, digits, spaces, hyphens, apostrophes, underscores."""
        v = v.strip()

        if not v:
            raise ValueError("Username cannot be empty")

        if len(v) > MAX_USERNAME_LENGTH:
            raise ValueError(f"Username too long (max {MAX_USERNAME_LENGTH} characters)")

        if not re.match(r"^[\w\s'-]+$", v, re.UNICODE):
            raise ValueError("Username can only contain letters, digits, spaces, hyphens, and apostrophes")

        return v
