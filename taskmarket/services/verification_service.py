"""Verification service for mutual task completion verification.

Each party reads their own code off-screen and tells it to the other party;
a party proves co-presence by entering the code assigned to the counterpart.
"""

import logging

from taskmarket.core import db_client
from taskmarket.core.errors import InvalidStateTransitionError, PermissionDeniedError
from taskmarket.core.logging import span
from taskmarket.domain.task import TaskLifecycleState
from taskmarket.models.service_models import VerificationResult
from taskmarket.services import task_state_machine


logger = logging.getLogger(__name__)


async def verify_code(*, task_id: str, submitted_code: str, user_id: str) -> VerificationResult:
    """Check a submitted code against the counterpart's code for this task.

    A mismatch is a normal outcome: nothing is written and `verified` is False.
    A match sets the submitter's own flag; if the counterpart has already
    verified, the task is completed and the submitter is asked to rate. The
    whole read-compare-write-reread sequence runs in one transaction, so a
    concurrent submission by the counterpart cannot be missed.

    Args:
        task_id: Task being verified
        submitted_code: Code entered by the user
        user_id: Submitting user ID

    Returns:
        VerificationResult with verified / completed / rating_requested flags

    Raises:
        NotFoundError: If the task does not exist
        PermissionDeniedError: If the user is neither the creator nor the doer
        InvalidStateTransitionError: If the task has no doer yet or is already completed
    """
    with span("verification_service.verify_code"):
        async with db_client.atomic() as tx:
            task = await tx.get_record(collection="tasks", record_id=task_id)

            role = task_state_machine.resolve_role(task, user_id)
            if role is None:
                msg = f"User {user_id} is not a party to task {task_id}"
                raise PermissionDeniedError(msg)

            state = task_state_machine.derive_lifecycle_state(task)
            if state == TaskLifecycleState.OPEN:
                msg = f"Cannot verify: task {task_id} has no doer yet"
                raise InvalidStateTransitionError(msg)
            if state == TaskLifecycleState.COMPLETED:
                msg = f"Cannot verify: task {task_id} is already completed"
                raise InvalidStateTransitionError(msg)

            expected = task_state_machine.expected_code_for(task, role)
            if expected is None or submitted_code != expected:
                logger.info("Verification code mismatch for task %s (%s)", task_id, role)
                return VerificationResult(verified=False, role=role)

            refreshed = await task_state_machine.mark_party_verified(tx, task_id=task_id, role=role)

            completed = False
            if refreshed["is_requestor_verified"] and refreshed["is_doer_verified"]:
                completed = await task_state_machine.transition_to_completed(tx, task_id=task_id)

        logger.info("Task %s verified by %s (user %s, completed=%s)", task_id, role, user_id, completed)
        return VerificationResult(verified=True, completed=completed, rating_requested=completed, role=role)
