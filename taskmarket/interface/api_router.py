"""HTTP routes for the task marketplace.

The acting user is taken from the X-User-Id header; session handling lives in
front of this service. Mutating routes return an OperationResult with HTTP 200
even when the operation is refused.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel, Field

from taskmarket.core.errors import NotFoundError, PermissionDeniedError
from taskmarket.core.rate_limiter import rate_limiter
from taskmarket.domain.application import Application
from taskmarket.domain.create_models import TaskCreate
from taskmarket.domain.profile import Profile
from taskmarket.domain.update_models import TaskUpdate
from taskmarket.interface import operations
from taskmarket.models.service_models import (
    ChatSummary,
    MessageView,
    OperationResult,
    RatingPrompt,
    UserDashboard,
)
from taskmarket.services import (
    application_service,
    chat_service,
    profile_service,
    rating_service,
    task_service,
    task_state_machine,
)
from taskmarket.services.dashboard_service import dashboard_cache


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["tasks"])


class ProfileRequest(BaseModel):
    username: str


class ApplicationRequest(BaseModel):
    message: str = ""


class VerifyRequest(BaseModel):
    code: str = Field(..., description="Code told to you by the other party")


class RatingRequest(BaseModel):
    rating: int = Field(..., description="1-5 stars, 0 means no selection")


class ChatRequest(BaseModel):
    other_user_id: str


class MessageRequest(BaseModel):
    content: str


async def require_user(x_user_id: Annotated[str | None, Header()] = None) -> str:
    """Resolve the acting user from the X-User-Id header."""
    if not x_user_id:
        logger.warning("api_auth_missing_user_header")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return x_user_id


CurrentUser = Annotated[str, Depends(require_user)]


def _read_failure(e: Exception) -> HTTPException:
    if isinstance(e, PermissionDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


# Profiles


@router.post("/profiles")
async def create_profile(body: ProfileRequest) -> OperationResult:
    return await operations.create_profile(username=body.username)


@router.get("/profiles/{user_id}")
async def get_profile(user_id: str) -> Profile:
    try:
        return Profile(**await profile_service.get_profile(user_id=user_id))
    except NotFoundError as e:
        raise _read_failure(e) from e


# Tasks


@router.get("/tasks/open")
async def list_open_tasks(user_id: CurrentUser) -> list[dict[str, Any]]:
    """Tasks still looking for a doer, excluding the caller's own."""
    return await task_service.get_open_tasks(exclude_creator_id=user_id)


@router.get("/tasks/{task_id}")
async def get_task(task_id: str, user_id: CurrentUser) -> dict[str, Any]:
    try:
        task = await task_service.get_task(task_id=task_id)
    except NotFoundError as e:
        raise _read_failure(e) from e
    return task_state_machine.redact_codes(task, user_id)


@router.get("/tasks/{task_id}/applications")
async def list_task_applications(task_id: str, user_id: CurrentUser) -> list[Application]:
    """Applications for one of the caller's tasks, oldest first."""
    try:
        task = await task_service.get_task(task_id=task_id)
    except NotFoundError as e:
        raise _read_failure(e) from e
    if task["creator_id"] != user_id:
        raise _read_failure(PermissionDeniedError(f"User {user_id} is not the creator of task {task_id}"))
    records = await application_service.get_applications_for_task(task_id=task_id)
    return [Application(**record) for record in records]


@router.post("/tasks")
async def create_task(body: TaskCreate, user_id: CurrentUser) -> OperationResult:
    return await operations.create_task(user_id=user_id, task=body)


@router.patch("/tasks/{task_id}")
async def edit_task(task_id: str, body: TaskUpdate, user_id: CurrentUser) -> OperationResult:
    return await operations.edit_task(user_id=user_id, task_id=task_id, update=body)


@router.post("/tasks/{task_id}/cancel")
async def cancel_task(task_id: str, user_id: CurrentUser) -> OperationResult:
    return await operations.cancel_task(user_id=user_id, task_id=task_id)


@router.post("/tasks/{task_id}/applications")
async def apply_for_task(task_id: str, body: ApplicationRequest, user_id: CurrentUser) -> OperationResult:
    return await operations.apply_for_task(user_id=user_id, task_id=task_id, message=body.message)


@router.post("/applications/{application_id}/approve")
async def approve_application(application_id: str, user_id: CurrentUser) -> OperationResult:
    return await operations.approve_application(user_id=user_id, application_id=application_id)


@router.post("/applications/{application_id}/reject")
async def reject_application(application_id: str, user_id: CurrentUser) -> OperationResult:
    return await operations.reject_application(user_id=user_id, application_id=application_id)


@router.post("/tasks/{task_id}/verify")
async def verify_code(task_id: str, body: VerifyRequest, user_id: CurrentUser) -> OperationResult:
    await rate_limiter.check_verification_rate_limit(user_id=user_id, task_id=task_id)
    return await operations.verify_code(user_id=user_id, task_id=task_id, code=body.code)


@router.post("/tasks/{task_id}/rating")
async def submit_rating(task_id: str, body: RatingRequest, user_id: CurrentUser) -> OperationResult:
    return await operations.submit_rating(user_id=user_id, task_id=task_id, rating=body.rating)


@router.get("/dashboard")
async def get_dashboard(user_id: CurrentUser) -> UserDashboard:
    return await dashboard_cache.get(user_id=user_id)


@router.get("/ratings/pending")
async def get_pending_ratings(user_id: CurrentUser) -> list[RatingPrompt]:
    return await rating_service.get_pending_rating_prompts(user_id=user_id)


# Chats


@router.get("/chats")
async def list_chats(user_id: CurrentUser) -> list[ChatSummary]:
    return await chat_service.list_chats(user_id=user_id)


@router.post("/chats")
async def start_chat(body: ChatRequest, user_id: CurrentUser) -> OperationResult:
    return await operations.start_chat(user_id=user_id, other_user_id=body.other_user_id)


@router.get("/chats/{chat_id}/messages")
async def get_messages(chat_id: str, user_id: CurrentUser) -> list[MessageView]:
    try:
        return await chat_service.get_messages(chat_id=chat_id, user_id=user_id)
    except (NotFoundError, PermissionDeniedError) as e:
        raise _read_failure(e) from e


@router.post("/chats/{chat_id}/messages")
async def send_message(chat_id: str, body: MessageRequest, user_id: CurrentUser) -> OperationResult:
    return await operations.send_message(user_id=user_id, chat_id=chat_id, content=body.content)
