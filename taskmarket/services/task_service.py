"""Task service for creating, editing, cancelling and querying tasks."""

import logging
from typing import Any

from taskmarket.core import db_client
from taskmarket.core.config import settings
from taskmarket.core.errors import (
    InvalidStateTransitionError,
    PermissionDeniedError,
    ValidationError,
    ValidationReason,
)
from taskmarket.core.logging import span
from taskmarket.domain.create_models import TaskCreate, utc_now_iso
from taskmarket.domain.task import TaskStatus
from taskmarket.domain.update_models import TaskUpdate


logger = logging.getLogger(__name__)

TASK_ID_BATCH_SIZE = 100


def _active_tasks_filter(creator_id: str) -> str:
    return f'creator_id = "{db_client.sanitize_param(creator_id)}" && status = "{TaskStatus.ACTIVE}"'


async def create_task(*, creator_id: str, task: TaskCreate) -> dict[str, Any]:
    """Create a new active task with no doer.

    The active-task quota check and the insert run in one transaction.

    Args:
        creator_id: Requestor user ID
        task: Validated task fields

    Returns:
        Created task record

    Raises:
        NotFoundError: If the creator has no profile
        ValidationError: QUOTA_EXCEEDED if the creator already has the maximum number of active tasks
    """
    with span("task_service.create_task"):
        async with db_client.atomic() as tx:
            await tx.get_record(collection="profiles", record_id=creator_id)

            active_count = await tx.count_records(collection="tasks", filter_query=_active_tasks_filter(creator_id))
            if active_count >= settings.max_active_tasks_per_creator:
                msg = f"You can only have {settings.max_active_tasks_per_creator} active tasks at a time"
                logger.warning("Task quota exceeded for creator %s (%d active)", creator_id, active_count)
                raise ValidationError(ValidationReason.QUOTA_EXCEEDED, msg)

            record = await tx.create_record(
                collection="tasks",
                data={
                    "title": task.title,
                    "description": task.description,
                    "location": task.location,
                    "reward": task.reward,
                    "deadline": task.deadline,
                    "task_type": task.task_type,
                    "status": TaskStatus.ACTIVE,
                    "creator_id": int(creator_id),
                    "created_at": utc_now_iso(),
                },
            )

        logger.info("Created task %s: %s (creator: %s)", record["id"], task.title, creator_id)
        return record


async def get_task(*, task_id: str) -> dict[str, Any]:
    """Get a task by ID.

    Raises:
        NotFoundError: If the task does not exist
    """
    with span("task_service.get_task"):
        return await db_client.get_record(collection="tasks", record_id=task_id)


async def edit_task(*, task_id: str, editor_id: str, update: TaskUpdate) -> dict[str, Any]:
    """Edit the descriptive fields of an active task (creator only).

    Raises:
        NotFoundError: If the task does not exist
        PermissionDeniedError: If the editor is not the creator
        InvalidStateTransitionError: If the task is already completed
    """
    with span("task_service.edit_task"):
        patch = update.model_dump(exclude_none=True)

        async with db_client.atomic() as tx:
            task = await tx.get_record(collection="tasks", record_id=task_id)
            if task["creator_id"] != editor_id:
                msg = f"User {editor_id} is not the creator of task {task_id}"
                raise PermissionDeniedError(msg)
            if task["status"] != TaskStatus.ACTIVE:
                msg = f"Cannot edit: task {task_id} is {task['status']}"
                raise InvalidStateTransitionError(msg)
            if not patch:
                return task

            updated = await tx.update_record(collection="tasks", record_id=task_id, data=patch)

        logger.info("Edited task %s fields=%s", task_id, sorted(patch))
        return updated


async def cancel_task(*, task_id: str, canceller_id: str) -> dict[str, Any]:
    """Force an active task to completed regardless of verification progress.

    No rating is triggered for cancelled tasks.

    Raises:
        NotFoundError: If the task does not exist
        PermissionDeniedError: If the canceller is not the creator
        InvalidStateTransitionError: If the task is already completed
    """
    with span("task_service.cancel_task"):
        async with db_client.atomic() as tx:
            task = await tx.get_record(collection="tasks", record_id=task_id)
            if task["creator_id"] != canceller_id:
                msg = f"User {canceller_id} is not the creator of task {task_id}"
                raise PermissionDeniedError(msg)

            cancelled = await tx.update_record_if(
                collection="tasks",
                record_id=task_id,
                data={"status": TaskStatus.COMPLETED},
                expected={"status": TaskStatus.ACTIVE},
            )
            if not cancelled:
                msg = f"Cannot cancel: task {task_id} is already completed"
                raise InvalidStateTransitionError(msg)

            updated = await tx.get_record(collection="tasks", record_id=task_id)

        logger.info("Task %s cancelled by creator %s", task_id, canceller_id)
        return updated


async def count_active_tasks(*, creator_id: str) -> int:
    """Count the creator's active tasks."""
    with span("task_service.count_active_tasks"):
        return await db_client.count_records(collection="tasks", filter_query=_active_tasks_filter(creator_id))


async def get_tasks_created_by(*, user_id: str) -> list[dict[str, Any]]:
    """Get tasks created by the user, newest first."""
    with span("task_service.get_tasks_created_by"):
        return await db_client.list_all_records(
            collection="tasks",
            filter_query=f'creator_id = "{db_client.sanitize_param(user_id)}"',
            sort="-created_at",
        )


async def get_tasks_assigned_to(*, user_id: str, status: TaskStatus | None = None) -> list[dict[str, Any]]:
    """Get tasks where the user is the approved doer, newest first."""
    with span("task_service.get_tasks_assigned_to"):
        filter_query = f'doer_id = "{db_client.sanitize_param(user_id)}"'
        if status:
            filter_query += f' && status = "{status}"'
        return await db_client.list_all_records(
            collection="tasks",
            filter_query=filter_query,
            sort="-created_at",
        )


async def get_tasks_by_ids(*, task_ids: list[str]) -> list[dict[str, Any]]:
    """Get tasks by ID in batches, newest first. Unknown IDs are skipped."""
    with span("task_service.get_tasks_by_ids"):
        unique_ids = list(dict.fromkeys(task_ids))
        tasks: list[dict[str, Any]] = []
        for batch_start in range(0, len(unique_ids), TASK_ID_BATCH_SIZE):
            batch = unique_ids[batch_start : batch_start + TASK_ID_BATCH_SIZE]
            tasks.extend(
                await db_client.list_records(
                    collection="tasks",
                    filter_query=db_client.build_in_filter("id", batch),
                    per_page=len(batch),
                )
            )
        return sorted(tasks, key=lambda t: (t["created_at"], int(t["id"])), reverse=True)


async def get_open_tasks(*, exclude_creator_id: str | None = None) -> list[dict[str, Any]]:
    """Get active tasks without a doer, newest first, optionally hiding one creator's tasks."""
    with span("task_service.get_open_tasks"):
        tasks = await db_client.list_all_records(
            collection="tasks",
            filter_query=f'status = "{TaskStatus.ACTIVE}"',
            sort="-created_at",
        )
        return [
            task
            for task in tasks
            if not task.get("doer_id") and (exclude_creator_id is None or task["creator_id"] != exclude_creator_id)
        ]
