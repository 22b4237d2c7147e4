"""Task domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field


class TaskStatus(StrEnum):
    """Persisted task status. Only ever moves forward."""

    ACTIVE = "active"
    COMPLETED = "completed"


class TaskType(StrEnum):
    """Kind of task."""

    NORMAL = "normal"
    JOINT = "joint"  # Reserved for multi-collaborator tasks


class TaskLifecycleState(StrEnum):
    """Lifecycle state derived from status, doer and verification flags."""

    OPEN = "OPEN"
    ASSIGNED = "ASSIGNED"
    PARTIALLY_VERIFIED = "PARTIALLY_VERIFIED"
    COMPLETED = "COMPLETED"


class PartyRole(StrEnum):
    """Role of a user within a task."""

    REQUESTOR = "requestor"
    DOER = "doer"


class Task(BaseModel):
    """Task data transfer object."""

    id: str = Field(..., description="Unique task ID from database")
    title: str = Field(..., description="Task title")
    description: str = Field(default="", description="Detailed task description")
    location: str = Field(default="", description="Where the task takes place")
    reward: float = Field(default=0, description="Offered reward")
    deadline: str = Field(..., description="Deadline (ISO format)")
    task_type: TaskType = Field(default=TaskType.NORMAL, description="normal or joint")
    status: TaskStatus = Field(default=TaskStatus.ACTIVE, description="active or completed")
    creator_id: str = Field(..., description="Requestor user ID")
    doer_id: str | None = Field(default=None, description="Approved applicant user ID")
    requestor_verification_code: str | None = Field(default=None, description="Code shown to the requestor")
    doer_verification_code: str | None = Field(default=None, description="Code shown to the doer")
    is_requestor_verified: bool = Field(default=False, description="Requestor entered the doer's code")
    is_doer_verified: bool = Field(default=False, description="Doer entered the requestor's code")
    requestor_rated: bool = Field(default=False, description="Requestor has rated the doer")
    doer_rated: bool = Field(default=False, description="Doer has rated the requestor")
    created_at: str = Field(..., description="Creation timestamp (ISO format)")
