"""Application service: apply for tasks, approve and reject applicants."""

import logging
from typing import Any

from taskmarket.core import db_client
from taskmarket.core.errors import (
    InvalidStateTransitionError,
    PermissionDeniedError,
    ValidationError,
    ValidationReason,
)
from taskmarket.core.logging import span
from taskmarket.domain.application import ApplicationStatus
from taskmarket.domain.create_models import utc_now_iso
from taskmarket.domain.task import TaskStatus
from taskmarket.services import task_state_machine


logger = logging.getLogger(__name__)

TASK_ID_BATCH_SIZE = 100


async def apply_for_task(*, task_id: str, applicant_id: str, message: str = "") -> dict[str, Any]:
    """Submit a pending application for a task.

    An applicant may apply to a given task only once, whatever the status of
    their earlier application.

    Args:
        task_id: Task to apply for
        applicant_id: Applying user ID
        message: Free-text message to the creator

    Returns:
        Created application record

    Raises:
        NotFoundError: If the task or applicant profile does not exist
        InvalidStateTransitionError: If the task is no longer active
        ValidationError: SELF_APPLICATION or DUPLICATE_APPLICATION
    """
    with span("application_service.apply_for_task"):
        async with db_client.atomic() as tx:
            task = await tx.get_record(collection="tasks", record_id=task_id)
            await tx.get_record(collection="profiles", record_id=applicant_id)

            if task["status"] != TaskStatus.ACTIVE:
                msg = f"Cannot apply: task {task_id} is {task['status']}"
                raise InvalidStateTransitionError(msg)

            if task["creator_id"] == applicant_id:
                msg = "You cannot apply for your own task"
                raise ValidationError(ValidationReason.SELF_APPLICATION, msg)

            existing = await tx.get_first_record(
                collection="task_applications",
                filter_query=(
                    f'task_id = "{db_client.sanitize_param(task_id)}" && '
                    f'applicant_id = "{db_client.sanitize_param(applicant_id)}"'
                ),
            )
            if existing:
                msg = "You have already applied for this task"
                logger.warning("Duplicate application by %s for task %s", applicant_id, task_id)
                raise ValidationError(ValidationReason.DUPLICATE_APPLICATION, msg)

            record = await tx.create_record(
                collection="task_applications",
                data={
                    "task_id": int(task_id),
                    "applicant_id": int(applicant_id),
                    "message": message.strip(),
                    "status": ApplicationStatus.PENDING,
                    "created_at": utc_now_iso(),
                },
            )

        logger.info("User %s applied for task %s (application %s)", applicant_id, task_id, record["id"])
        return record


async def _get_reviewable_application(
    tx: db_client.Transaction, *, application_id: str, reviewer_id: str
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Load an application and its task, checking the reviewer owns the task and it is still pending."""
    application = await tx.get_record(collection="task_applications", record_id=application_id)
    task = await tx.get_record(collection="tasks", record_id=application["task_id"])

    if task["creator_id"] != reviewer_id:
        msg = f"User {reviewer_id} is not the creator of task {task['id']}"
        raise PermissionDeniedError(msg)

    if application["status"] != ApplicationStatus.PENDING:
        msg = f"Cannot review: application {application_id} is already {application['status']}"
        raise InvalidStateTransitionError(msg)

    return application, task


async def approve_application(*, application_id: str, approver_id: str) -> dict[str, Any]:
    """Approve an application and assign its applicant as the task's doer.

    In one transaction: assigns the doer, generates both verification codes,
    resets both verification flags, approves this application and rejects
    every other application for the same task.

    Returns:
        Updated task record

    Raises:
        NotFoundError: If the application or task does not exist
        PermissionDeniedError: If the approver is not the task creator
        InvalidStateTransitionError: If the application is not pending or the task is not open
    """
    with span("application_service.approve_application"):
        async with db_client.atomic() as tx:
            application, task = await _get_reviewable_application(
                tx, application_id=application_id, reviewer_id=approver_id
            )
            task_id = task["id"]

            updated_task = await task_state_machine.transition_to_assigned(
                tx, task_id=task_id, doer_id=application["applicant_id"]
            )

            await tx.update_record(
                collection="task_applications",
                record_id=application_id,
                data={"status": ApplicationStatus.APPROVED},
            )
            rejected_count = await tx.update_records(
                collection="task_applications",
                filter_query=(
                    f'task_id = "{db_client.sanitize_param(task_id)}" && '
                    f'id != "{db_client.sanitize_param(application_id)}" && '
                    f'status = "{ApplicationStatus.PENDING}"'
                ),
                data={"status": ApplicationStatus.REJECTED},
            )

        logger.info(
            "Approved application %s for task %s (doer=%s, rejected %d others)",
            application_id,
            task_id,
            application["applicant_id"],
            rejected_count,
        )
        return updated_task


async def reject_application(*, application_id: str, rejecter_id: str) -> dict[str, Any]:
    """Reject a pending application. The task is not changed.

    Returns:
        Updated application record

    Raises:
        NotFoundError: If the application or task does not exist
        PermissionDeniedError: If the rejecter is not the task creator
        InvalidStateTransitionError: If the application is not pending
    """
    with span("application_service.reject_application"):
        async with db_client.atomic() as tx:
            await _get_reviewable_application(tx, application_id=application_id, reviewer_id=rejecter_id)
            updated = await tx.update_record(
                collection="task_applications",
                record_id=application_id,
                data={"status": ApplicationStatus.REJECTED},
            )

        logger.info("Rejected application %s", application_id)
        return updated


async def get_applications_for_task(*, task_id: str) -> list[dict[str, Any]]:
    """Get all applications for a task, oldest first."""
    with span("application_service.get_applications_for_task"):
        return await db_client.list_all_records(
            collection="task_applications",
            filter_query=f'task_id = "{db_client.sanitize_param(task_id)}"',
            sort="created_at",
        )


async def get_applications_for_tasks(*, task_ids: list[str]) -> list[dict[str, Any]]:
    """Get applications for several tasks, newest first."""
    with span("application_service.get_applications_for_tasks"):
        applications: list[dict[str, Any]] = []
        unique_ids = list(dict.fromkeys(task_ids))
        for batch_start in range(0, len(unique_ids), TASK_ID_BATCH_SIZE):
            batch = unique_ids[batch_start : batch_start + TASK_ID_BATCH_SIZE]
            applications.extend(
                await db_client.list_all_records(
                    collection="task_applications",
                    filter_query=db_client.build_in_filter("task_id", batch),
                )
            )
        return sorted(applications, key=lambda a: (a["created_at"], int(a["id"])), reverse=True)


async def get_applications_by_applicant(*, applicant_id: str) -> list[dict[str, Any]]:
    """Get every application the user has submitted, newest first."""
    with span("application_service.get_applications_by_applicant"):
        return await db_client.list_all_records(
            collection="task_applications",
            filter_query=f'applicant_id = "{db_client.sanitize_param(applicant_id)}"',
            sort="-created_at",
        )
