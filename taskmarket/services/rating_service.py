"""Rating service: post-completion ratings between the two parties of a task."""

import logging
from typing import Any

from taskmarket.core import db_client
from taskmarket.core.config import constants
from taskmarket.core.errors import (
    InvalidStateTransitionError,
    PermissionDeniedError,
    ValidationError,
    ValidationReason,
)
from taskmarket.core.logging import span
from taskmarket.domain.task import PartyRole, TaskStatus
from taskmarket.models.service_models import RatingPrompt
from taskmarket.services import profile_service, task_state_machine


logger = logging.getLogger(__name__)

# Profile field written for the counterpart, keyed by the rater's role:
# a doer rates the creator as a requestor, a creator rates the doer as a doer.
_RATING_FIELD = {
    PartyRole.DOER: "requestor_rating",
    PartyRole.REQUESTOR: "doer_rating",
}


def _validate_rating(rating: int) -> None:
    if rating == constants.RATING_UNRATED:
        msg = "Please select a rating before submitting"
        raise ValidationError(ValidationReason.RATING_REQUIRED, msg)
    if not constants.RATING_MIN <= rating <= constants.RATING_MAX:
        msg = f"Rating must be between {constants.RATING_MIN} and {constants.RATING_MAX}"
        raise ValidationError(ValidationReason.RATING_OUT_OF_RANGE, msg)


def _is_verified_completion(task: dict[str, Any]) -> bool:
    return task["status"] == TaskStatus.COMPLETED and task["is_requestor_verified"] and task["is_doer_verified"]


async def submit_rating(*, task_id: str, rater_id: str, rating: int) -> dict[str, Any]:
    """Record the rater's 1-5 rating of their counterpart on a verified-completed task.

    Overwrites (does not average) the counterpart's rating field for the
    rater's role. Each party rates a task once.

    Returns:
        Updated profile of the rated user

    Raises:
        ValidationError: RATING_REQUIRED, RATING_OUT_OF_RANGE or ALREADY_RATED
        NotFoundError: If the task or rated profile does not exist
        PermissionDeniedError: If the rater is not a party to the task
        InvalidStateTransitionError: If the task was not completed through verification
    """
    with span("rating_service.submit_rating"):
        _validate_rating(rating)

        async with db_client.atomic() as tx:
            task = await tx.get_record(collection="tasks", record_id=task_id)

            role = task_state_machine.resolve_role(task, rater_id)
            if role is None:
                msg = f"User {rater_id} is not a party to task {task_id}"
                raise PermissionDeniedError(msg)

            if not _is_verified_completion(task):
                msg = f"Cannot rate: task {task_id} was not completed through verification"
                raise InvalidStateTransitionError(msg)

            rated_flag = task_state_machine.rated_flag(role)
            if task[rated_flag]:
                msg = "You have already rated this task"
                raise ValidationError(ValidationReason.ALREADY_RATED, msg)

            rated_user_id = task["doer_id"] if role == PartyRole.REQUESTOR else task["creator_id"]
            profile = await tx.update_record(
                collection="profiles",
                record_id=rated_user_id,
                data={_RATING_FIELD[role]: rating},
            )
            await tx.update_record(collection="tasks", record_id=task_id, data={rated_flag: True})

        logger.info("User %s (%s) rated user %s %d/5 for task %s", rater_id, role, rated_user_id, rating, task_id)
        return profile


async def get_pending_rating_prompts(*, user_id: str) -> list[RatingPrompt]:
    """Get verified-completed tasks the user is a party to and has not rated yet.

    Both parties are prompted, not only the one whose verification completed the task.
    """
    with span("rating_service.get_pending_rating_prompts"):
        sanitized_user_id = db_client.sanitize_param(user_id)
        tasks = await db_client.list_all_records(
            collection="tasks",
            filter_query=(
                f'(creator_id = "{sanitized_user_id}" || doer_id = "{sanitized_user_id}") && '
                f'status = "{TaskStatus.COMPLETED}" && '
                'is_requestor_verified = "true" && is_doer_verified = "true"'
            ),
            sort="-created_at",
        )

        pending: list[tuple[dict[str, Any], PartyRole, str]] = []
        for task in tasks:
            role = task_state_machine.resolve_role(task, user_id)
            if role is None or task[task_state_machine.rated_flag(role)]:
                continue
            partner_id = task["doer_id"] if role == PartyRole.REQUESTOR else task["creator_id"]
            pending.append((task, role, partner_id))

        if not pending:
            return []

        names = await profile_service.get_usernames(user_ids=[partner_id for _, _, partner_id in pending])
        return [
            RatingPrompt(
                task_id=task["id"],
                task_title=task["title"],
                role=role,
                partner_id=partner_id,
                partner_name=names[partner_id],
            )
            for task, role, partner_id in pending
        ]
