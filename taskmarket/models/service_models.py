"""Pydantic models for service layer return types.

These models provide type safety at service boundaries, converting database
dictionaries into typed objects with validation.
"""

from typing import Any

from pydantic import BaseModel, Field

from taskmarket.domain.application import ApplicationStatus
from taskmarket.domain.chat import Message
from taskmarket.domain.task import PartyRole, Task


class OperationResult(BaseModel):
    """Outcome of a user-facing operation. Never a partial success."""

    success: bool
    reason: str | None = None
    code: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class VerificationResult(BaseModel):
    """Outcome of a verification code submission."""

    verified: bool
    completed: bool = False
    rating_requested: bool = False
    role: PartyRole


class ReceivedApplication(BaseModel):
    """Application on one of the user's tasks, enriched for display."""

    id: str
    task_id: str
    task_title: str
    applicant_id: str
    applicant_name: str
    message: str
    status: ApplicationStatus
    created_at: str


class AppliedTask(BaseModel):
    """Task the user has applied for, with the user's application status."""

    task: Task
    creator_name: str
    application_status: ApplicationStatus


class RatingPrompt(BaseModel):
    """A completed task the user still has to rate."""

    task_id: str
    task_title: str
    role: PartyRole
    partner_id: str
    partner_name: str


class UserDashboard(BaseModel):
    """Everything the task page shows for one user."""

    user_id: str
    created_tasks: list[Task]
    applied_tasks: list[AppliedTask]
    received_applications: list[ReceivedApplication]
    active_tasks: list[Task]
    rating_prompts: list[RatingPrompt]


class ChatSummary(BaseModel):
    """Chat list entry from one participant's point of view."""

    id: str
    participant_id: str
    participant_name: str
    last_message: str | None = None
    last_message_time: str | None = None
    unread_count: int = 0


class MessageView(Message):
    """Message enriched with the sender's name."""

    sender_name: str
