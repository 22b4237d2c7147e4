"""Operation boundary for user intents.

Every exposed operation returns an OperationResult. Failures raised by the
service layer are logged and converted to a user-facing reason here; nothing
above this module sees an exception from a service call.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ValidationError as PydanticValidationError

from taskmarket.core.errors import (
    ErrorSeverity,
    InvalidStateTransitionError,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    ValidationError,
    classify_error_with_response,
)
from taskmarket.core.logging import log_with_user_context
from taskmarket.domain.create_models import TaskCreate
from taskmarket.domain.update_models import TaskUpdate
from taskmarket.models.service_models import OperationResult
from taskmarket.services import (
    application_service,
    chat_service,
    profile_service,
    rating_service,
    task_service,
    task_state_machine,
    verification_service,
)


logger = logging.getLogger(__name__)

_EXPECTED_ERRORS = (
    ValidationError,
    PydanticValidationError,
    InvalidStateTransitionError,
    PermissionDeniedError,
    NotFoundError,
    StoreError,
)


def _to_data(value: Any) -> dict[str, Any]:  # noqa: ANN401
    if value is None:
        return {}
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return dict(value)


async def run_operation(
    name: str,
    user_id: str,
    call: Callable[[], Awaitable[Any]],
) -> OperationResult:
    """Run a service call and turn its outcome into an OperationResult.

    Args:
        name: Operation name used in logs
        user_id: Acting user
        call: Zero-argument coroutine factory performing the operation

    Returns:
        success=True with the call's result as data, or success=False with
        the classified reason and error code
    """
    try:
        result = await call()
    except _EXPECTED_ERRORS as e:
        error_response = classify_error_with_response(e)
        level = "error" if error_response.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL) else "info"
        log_with_user_context(
            logger,
            level,
            "operation_failed",
            user_id=user_id,
            operation=name,
            error_code=error_response.code,
            error=str(e),
        )
        return OperationResult(success=False, reason=error_response.message, code=error_response.code)
    except Exception as e:
        logger.exception("operation_crashed", extra={"operation": name, "user_id": user_id})
        error_response = classify_error_with_response(e)
        return OperationResult(success=False, reason=error_response.message, code=error_response.code)

    log_with_user_context(logger, "info", "operation_succeeded", user_id=user_id, operation=name)
    return OperationResult(success=True, data=_to_data(result))


async def create_profile(*, username: str) -> OperationResult:
    async def call() -> dict[str, Any]:
        return {"profile": await profile_service.create_profile(username=username)}

    return await run_operation("create_profile", "", call)


async def create_task(*, user_id: str, task: TaskCreate) -> OperationResult:
    async def call() -> dict[str, Any]:
        record = await task_service.create_task(creator_id=user_id, task=task)
        return {"task": task_state_machine.redact_codes(record, user_id)}

    return await run_operation("create_task", user_id, call)


async def edit_task(*, user_id: str, task_id: str, update: TaskUpdate) -> OperationResult:
    async def call() -> dict[str, Any]:
        record = await task_service.edit_task(task_id=task_id, editor_id=user_id, update=update)
        return {"task": task_state_machine.redact_codes(record, user_id)}

    return await run_operation("edit_task", user_id, call)


async def apply_for_task(*, user_id: str, task_id: str, message: str = "") -> OperationResult:
    async def call() -> dict[str, Any]:
        return {
            "application": await application_service.apply_for_task(
                task_id=task_id, applicant_id=user_id, message=message
            )
        }

    return await run_operation("apply_for_task", user_id, call)


async def approve_application(*, user_id: str, application_id: str) -> OperationResult:
    async def call() -> dict[str, Any]:
        record = await application_service.approve_application(application_id=application_id, approver_id=user_id)
        return {"task": task_state_machine.redact_codes(record, user_id)}

    return await run_operation("approve_application", user_id, call)


async def reject_application(*, user_id: str, application_id: str) -> OperationResult:
    async def call() -> dict[str, Any]:
        return {
            "application": await application_service.reject_application(
                application_id=application_id, rejecter_id=user_id
            )
        }

    return await run_operation("reject_application", user_id, call)


async def verify_code(*, user_id: str, task_id: str, code: str) -> OperationResult:
    """Submit a verification code. A mismatch is a success with verified=False."""

    async def call() -> BaseModel:
        return await verification_service.verify_code(task_id=task_id, submitted_code=code, user_id=user_id)

    return await run_operation("verify_code", user_id, call)


async def cancel_task(*, user_id: str, task_id: str) -> OperationResult:
    async def call() -> dict[str, Any]:
        record = await task_service.cancel_task(task_id=task_id, canceller_id=user_id)
        return {"task": task_state_machine.redact_codes(record, user_id)}

    return await run_operation("cancel_task", user_id, call)


async def submit_rating(*, user_id: str, task_id: str, rating: int) -> OperationResult:
    async def call() -> dict[str, Any]:
        return {"profile": await rating_service.submit_rating(task_id=task_id, rater_id=user_id, rating=rating)}

    return await run_operation("submit_rating", user_id, call)


async def start_chat(*, user_id: str, other_user_id: str) -> OperationResult:
    async def call() -> dict[str, Any]:
        return {"chat": await chat_service.get_or_create_chat(user_id=user_id, other_user_id=other_user_id)}

    return await run_operation("start_chat", user_id, call)


async def send_message(*, user_id: str, chat_id: str, content: str) -> OperationResult:
    async def call() -> dict[str, Any]:
        return {"message": await chat_service.send_message(chat_id=chat_id, sender_id=user_id, content=content)}

    return await run_operation("send_message", user_id, call)
