"""Task application domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field


class ApplicationStatus(StrEnum):
    """Application review status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Application(BaseModel):
    """Application data transfer object."""

    id: str = Field(..., description="Unique application ID from database")
    task_id: str = Field(..., description="Task applied for")
    applicant_id: str = Field(..., description="Applicant user ID")
    message: str = Field(default="", description="Free-text message to the task creator")
    status: ApplicationStatus = Field(default=ApplicationStatus.PENDING, description="Review status")
    created_at: str = Field(..., description="Creation timestamp (ISO format)")
