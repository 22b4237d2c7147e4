"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import patch

import logfire
import pytest

from taskmarket.core import change_feed
from taskmarket.core.config import settings
from taskmarket.core.db_client import close_connection, init_db
from taskmarket.domain.create_models import TaskCreate
from taskmarket.services import application_service, profile_service, task_service


# Codes handed out at approval in tests that pin them
REQUESTOR_CODE = "482913"
DOER_CODE = "117650"


@pytest.fixture(scope="session", autouse=True)
def configure_test_logfire() -> None:
    """Keep spans local during tests."""
    logfire.configure(send_to_logfire=False, console=False)


@pytest.fixture(autouse=True)
def reset_change_feed():
    """Release any subscription a test left behind."""
    yield
    for subscription in list(change_feed._subscriptions):
        subscription.unsubscribe()


@pytest.fixture
async def db(tmp_path, monkeypatch) -> AsyncIterator[str]:
    """Point settings at a fresh SQLite file with the schema applied."""
    db_path = str(tmp_path / "taskmarket_test.db")
    monkeypatch.setattr(settings, "sqlite_db_path", db_path)
    await init_db()
    yield db_path
    await close_connection()


@pytest.fixture
def fixed_codes():
    """Pin the verification codes generated at approval."""
    with patch(
        "taskmarket.services.verification_code.generate_code_pair",
        return_value=(REQUESTOR_CODE, DOER_CODE),
    ) as mock_pair:
        yield mock_pair


def task_payload(title: str = "Walk the dog", **overrides: Any) -> TaskCreate:
    """Build a valid TaskCreate with a deadline one week out."""
    fields: dict[str, Any] = {
        "title": title,
        "description": "Thirty minutes around the park",
        "location": "Riverside",
        "reward": 15,
        "deadline": datetime.now(UTC) + timedelta(days=7),
    }
    fields.update(overrides)
    return TaskCreate(**fields)


@pytest.fixture
def make_profile(db) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Factory creating profiles in the test database."""

    async def _make(username: str = "alice") -> dict[str, Any]:
        return await profile_service.create_profile(username=username)

    return _make


@pytest.fixture
def make_task(db) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Factory creating active tasks in the test database."""

    async def _make(creator_id: str, title: str = "Walk the dog", **overrides: Any) -> dict[str, Any]:
        return await task_service.create_task(creator_id=creator_id, task=task_payload(title, **overrides))

    return _make


@pytest.fixture
async def parties(make_profile) -> dict[str, dict[str, Any]]:
    """Requestor A, applicant B and a bystander C."""
    return {
        "a": await make_profile("alice"),
        "b": await make_profile("bob"),
        "c": await make_profile("carol"),
    }


@pytest.fixture
async def assigned_task(parties, make_task, fixed_codes) -> dict[str, Any]:
    """Task created by A with B approved as the doer, using the pinned codes."""
    task = await make_task(parties["a"]["id"])
    application = await application_service.apply_for_task(
        task_id=task["id"], applicant_id=parties["b"]["id"], message="I can do this"
    )
    return await application_service.approve_application(
        application_id=application["id"], approver_id=parties["a"]["id"]
    )
