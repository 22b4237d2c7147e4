"""Domain models and DTOs."""

from taskmarket.domain.application import Application, ApplicationStatus
from taskmarket.domain.chat import Chat, Message
from taskmarket.domain.create_models import ProfileCreate, TaskCreate
from taskmarket.domain.profile import Profile
from taskmarket.domain.task import PartyRole, Task, TaskLifecycleState, TaskStatus, TaskType
from taskmarket.domain.update_models import TaskUpdate


__all__ = [
    "Application",
    "ApplicationStatus",
    "Chat",
    "Message",
    "PartyRole",
    "Profile",
    "ProfileCreate",
    "Task",
    "TaskCreate",
    "TaskLifecycleState",
    "TaskStatus",
    "TaskType",
    "TaskUpdate",
]
