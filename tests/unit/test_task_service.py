"""Unit tests for task_service module."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError as PydanticValidationError

from taskmarket.core.config import settings
from taskmarket.core.errors import (
    InvalidStateTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    ValidationReason,
)
from taskmarket.domain.task import TaskStatus, TaskType
from taskmarket.domain.update_models import TaskUpdate
from taskmarket.services import task_service, verification_service
from tests.conftest import REQUESTOR_CODE, task_payload


@pytest.mark.unit
class TestCreateTask:
    """Tests for create_task function."""

    async def test_create_task_success(self, parties):
        """Test creating a task stores an unassigned active record."""
        deadline = datetime(2026, 12, 1, 10, 0, tzinfo=UTC)

        result = await task_service.create_task(
            creator_id=parties["a"]["id"],
            task=task_payload("Assemble shelf", deadline=deadline, reward=25, task_type=TaskType.JOINT),
        )

        assert result["title"] == "Assemble shelf"
        assert result["status"] == TaskStatus.ACTIVE
        assert result["creator_id"] == parties["a"]["id"]
        assert result["doer_id"] is None
        assert result["requestor_verification_code"] is None
        assert result["doer_verification_code"] is None
        assert result["is_requestor_verified"] is False
        assert result["is_doer_verified"] is False
        assert result["deadline"] == deadline.isoformat()
        assert result["reward"] == 25
        assert result["task_type"] == "joint"

    async def test_create_task_unknown_creator(self, db):
        """Test creating a task for an unknown creator fails."""
        with pytest.raises(NotFoundError):
            await task_service.create_task(creator_id="99", task=task_payload())

    async def test_fourth_active_task_exceeds_quota(self, parties, make_task):
        """Test a fourth active task exceeds the quota."""
        creator_id = parties["a"]["id"]
        for title in ("One", "Two", "Three"):
            await make_task(creator_id, title)

        with pytest.raises(ValidationError) as exc_info:
            await task_service.create_task(creator_id=creator_id, task=task_payload("Four"))

        assert exc_info.value.reason == ValidationReason.QUOTA_EXCEEDED
        assert await task_service.count_active_tasks(creator_id=creator_id) == 3

    async def test_cancelled_task_frees_quota(self, parties, make_task):
        """Test cancelling a task frees a quota slot."""
        creator_id = parties["a"]["id"]
        tasks = [await make_task(creator_id, title) for title in ("One", "Two", "Three")]

        await task_service.cancel_task(task_id=tasks[0]["id"], canceller_id=creator_id)
        result = await task_service.create_task(creator_id=creator_id, task=task_payload("Four"))

        assert result["status"] == TaskStatus.ACTIVE

    async def test_quota_is_per_creator(self, parties, make_task):
        """Test the quota is counted per creator."""
        for title in ("One", "Two", "Three"):
            await make_task(parties["a"]["id"], title)

        result = await task_service.create_task(creator_id=parties["b"]["id"], task=task_payload())

        assert result["creator_id"] == parties["b"]["id"]

    async def test_quota_follows_settings(self, parties, make_task, monkeypatch):
        """Test the quota follows settings."""
        monkeypatch.setattr(settings, "max_active_tasks_per_creator", 1)
        await make_task(parties["a"]["id"])

        with pytest.raises(ValidationError, match="1 active tasks"):
            await task_service.create_task(creator_id=parties["a"]["id"], task=task_payload("Second"))

    def test_blank_title_rejected(self):
        """Test a blank title is rejected."""
        with pytest.raises(PydanticValidationError, match="Title cannot be empty"):
            task_payload("   ")

    def test_negative_reward_rejected(self):
        """Test a negative reward is rejected."""
        with pytest.raises(PydanticValidationError):
            task_payload(reward=-1)


@pytest.mark.unit
class TestEditTask:
    """Tests for edit_task function."""

    async def test_edit_patches_given_fields(self, parties, make_task):
        """Test editing patches only the given fields."""
        task = await make_task(parties["a"]["id"])

        result = await task_service.edit_task(
            task_id=task["id"],
            editor_id=parties["a"]["id"],
            update=TaskUpdate(title="Walk two dogs", reward=20),
        )

        assert result["title"] == "Walk two dogs"
        assert result["reward"] == 20
        assert result["location"] == task["location"]

    async def test_edit_by_non_creator(self, parties, make_task):
        """Test editing by someone other than the creator is denied."""
        task = await make_task(parties["a"]["id"])

        with pytest.raises(PermissionDeniedError):
            await task_service.edit_task(task_id=task["id"], editor_id=parties["b"]["id"], update=TaskUpdate(title="x"))

    async def test_edit_completed_task(self, parties, make_task):
        """Test editing a completed task is rejected."""
        task = await make_task(parties["a"]["id"])
        await task_service.cancel_task(task_id=task["id"], canceller_id=parties["a"]["id"])

        with pytest.raises(InvalidStateTransitionError):
            await task_service.edit_task(task_id=task["id"], editor_id=parties["a"]["id"], update=TaskUpdate(title="x"))

    async def test_empty_update_returns_task_unchanged(self, parties, make_task):
        """Test an empty update returns the task unchanged."""
        task = await make_task(parties["a"]["id"])

        result = await task_service.edit_task(task_id=task["id"], editor_id=parties["a"]["id"], update=TaskUpdate())

        assert result == task


@pytest.mark.unit
class TestCancelTask:
    """Tests for cancel_task function."""

    async def test_cancel_open_task(self, parties, make_task):
        """Test cancelling an open task."""
        task = await make_task(parties["a"]["id"])

        result = await task_service.cancel_task(task_id=task["id"], canceller_id=parties["a"]["id"])

        assert result["status"] == TaskStatus.COMPLETED
        assert result["doer_id"] is None

    async def test_cancel_partially_verified_task(self, parties, assigned_task):
        """Test cancelling a partially verified task."""
        await verification_service.verify_code(
            task_id=assigned_task["id"], submitted_code=REQUESTOR_CODE, user_id=parties["b"]["id"]
        )

        result = await task_service.cancel_task(task_id=assigned_task["id"], canceller_id=parties["a"]["id"])

        assert result["status"] == TaskStatus.COMPLETED
        assert result["is_doer_verified"] is True
        assert result["is_requestor_verified"] is False

    async def test_cancel_by_doer_is_denied(self, parties, assigned_task):
        """Test the doer cannot cancel the task."""
        with pytest.raises(PermissionDeniedError):
            await task_service.cancel_task(task_id=assigned_task["id"], canceller_id=parties["b"]["id"])

    async def test_cancel_twice(self, parties, make_task):
        """Test cancelling twice is rejected."""
        task = await make_task(parties["a"]["id"])
        await task_service.cancel_task(task_id=task["id"], canceller_id=parties["a"]["id"])

        with pytest.raises(InvalidStateTransitionError, match="already completed"):
            await task_service.cancel_task(task_id=task["id"], canceller_id=parties["a"]["id"])


@pytest.mark.unit
class TestTaskQueries:
    """Tests for task listing helpers."""

    async def test_created_newest_first(self, parties, make_task):
        """Test created tasks are listed newest first."""
        first = await make_task(parties["a"]["id"], "First")
        second = await make_task(parties["a"]["id"], "Second")

        result = await task_service.get_tasks_created_by(user_id=parties["a"]["id"])

        assert [t["id"] for t in result] == [second["id"], first["id"]]

    async def test_open_tasks_exclude_assigned_and_own(self, parties, make_task, assigned_task):
        """Test open tasks exclude assigned tasks and the caller's own."""
        open_task = await make_task(parties["b"]["id"], "Water plants")

        seen_by_c = await task_service.get_open_tasks(exclude_creator_id=parties["c"]["id"])
        seen_by_b = await task_service.get_open_tasks(exclude_creator_id=parties["b"]["id"])

        assert [t["id"] for t in seen_by_c] == [open_task["id"]]
        assert seen_by_b == []

    async def test_assigned_to(self, parties, assigned_task):
        """Test listing tasks assigned to a doer."""
        result = await task_service.get_tasks_assigned_to(user_id=parties["b"]["id"], status=TaskStatus.ACTIVE)

        assert [t["id"] for t in result] == [assigned_task["id"]]
        assert await task_service.get_tasks_assigned_to(user_id=parties["c"]["id"]) == []

    async def test_get_tasks_by_ids_skips_unknown(self, parties, make_task):
        """Test batch lookup skips unknown ids."""
        task = await make_task(parties["a"]["id"])

        result = await task_service.get_tasks_by_ids(task_ids=[task["id"], "404", task["id"]])

        assert [t["id"] for t in result] == [task["id"]]
