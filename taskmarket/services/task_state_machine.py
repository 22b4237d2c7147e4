"""Task lifecycle state derivation and guarded transitions.

Transition functions run inside a caller-provided db_client transaction so
that guards and writes observe and commit one consistent snapshot.
"""

import logging
from typing import Any

from taskmarket.core.db_client import Transaction
from taskmarket.core.errors import InvalidStateTransitionError
from taskmarket.core.logging import span
from taskmarket.domain.task import PartyRole, TaskLifecycleState, TaskStatus
from taskmarket.services import verification_code


logger = logging.getLogger(__name__)

_VERIFIED_FLAG = {
    PartyRole.REQUESTOR: "is_requestor_verified",
    PartyRole.DOER: "is_doer_verified",
}

_OWN_CODE = {
    PartyRole.REQUESTOR: "requestor_verification_code",
    PartyRole.DOER: "doer_verification_code",
}

_RATED_FLAG = {
    PartyRole.REQUESTOR: "requestor_rated",
    PartyRole.DOER: "doer_rated",
}


def derive_lifecycle_state(task: dict[str, Any]) -> TaskLifecycleState:
    """Compute the lifecycle state from status, doer and verification flags."""
    if task["status"] == TaskStatus.COMPLETED:
        return TaskLifecycleState.COMPLETED
    if not task.get("doer_id"):
        return TaskLifecycleState.OPEN
    if task.get("is_requestor_verified") or task.get("is_doer_verified"):
        return TaskLifecycleState.PARTIALLY_VERIFIED
    return TaskLifecycleState.ASSIGNED


def resolve_role(task: dict[str, Any], user_id: str) -> PartyRole | None:
    """Return the user's role in the task, or None if they are not a party."""
    if task["creator_id"] == user_id:
        return PartyRole.REQUESTOR
    if task.get("doer_id") and task["doer_id"] == user_id:
        return PartyRole.DOER
    return None


def counterpart(role: PartyRole) -> PartyRole:
    return PartyRole.DOER if role == PartyRole.REQUESTOR else PartyRole.REQUESTOR


def verified_flag(role: PartyRole) -> str:
    return _VERIFIED_FLAG[role]


def rated_flag(role: PartyRole) -> str:
    return _RATED_FLAG[role]


def expected_code_for(task: dict[str, Any], role: PartyRole) -> str | None:
    """Code a party must enter: the one assigned to the other party."""
    return task.get(_OWN_CODE[counterpart(role)])


def redact_codes(task: dict[str, Any], viewer_id: str) -> dict[str, Any]:
    """Copy of the task showing the viewer only their own verification code."""
    role = resolve_role(task, viewer_id)
    visible = dict(task)
    for party, field in _OWN_CODE.items():
        if party != role:
            visible[field] = None
    return visible


async def transition_to_assigned(tx: Transaction, *, task_id: str, doer_id: str) -> dict[str, Any]:
    """Assign the doer, generate both verification codes and reset both flags (OPEN -> ASSIGNED)."""
    with span("task_state_machine.transition_to_assigned"):
        task = await tx.get_record(collection="tasks", record_id=task_id)

        state = derive_lifecycle_state(task)
        if state != TaskLifecycleState.OPEN:
            msg = f"Cannot assign: task {task_id} is in {state} state"
            raise InvalidStateTransitionError(msg)

        requestor_code, doer_code = verification_code.generate_code_pair()
        updated = await tx.update_record(
            collection="tasks",
            record_id=task_id,
            data={
                "doer_id": int(doer_id),
                "requestor_verification_code": requestor_code,
                "doer_verification_code": doer_code,
                "is_requestor_verified": False,
                "is_doer_verified": False,
            },
        )

        logger.info("Transitioned task %s to ASSIGNED (doer=%s)", task_id, doer_id)
        return updated


async def mark_party_verified(tx: Transaction, *, task_id: str, role: PartyRole) -> dict[str, Any]:
    """Set the party's own verification flag and return the freshly re-read task."""
    with span("task_state_machine.mark_party_verified"):
        updated = await tx.update_record(
            collection="tasks",
            record_id=task_id,
            data={verified_flag(role): True},
        )
        logger.info("Task %s verified by %s", task_id, role)
        return updated


async def transition_to_completed(tx: Transaction, *, task_id: str) -> bool:
    """Move an active task to completed.

    Returns:
        True if this call performed the transition, False if the task was already completed
    """
    with span("task_state_machine.transition_to_completed"):
        transitioned = await tx.update_record_if(
            collection="tasks",
            record_id=task_id,
            data={"status": TaskStatus.COMPLETED},
            expected={"status": TaskStatus.ACTIVE},
        )
        if transitioned:
            logger.info("Transitioned task %s to COMPLETED", task_id)
        return transitioned
