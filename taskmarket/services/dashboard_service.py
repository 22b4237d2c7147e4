"""Dashboard service: per-user task page aggregate and its change-driven cache.

The cache never patches a dashboard in place. Any committed change to tasks
or applications drops every cached entry and the next read re-fetches.
"""

import logging
from typing import Any

from taskmarket.core import change_feed
from taskmarket.core.config import constants
from taskmarket.core.logging import span
from taskmarket.domain.task import Task, TaskStatus
from taskmarket.models.service_models import AppliedTask, ReceivedApplication, UserDashboard
from taskmarket.services import application_service, profile_service, rating_service, task_service, task_state_machine


logger = logging.getLogger(__name__)


def _newest_first(tasks: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(tasks, key=lambda t: (t["created_at"], int(t["id"])), reverse=True)


async def _get_applied_tasks(*, user_id: str) -> list[AppliedTask]:
    applications = await application_service.get_applications_by_applicant(applicant_id=user_id)
    if not applications:
        return []

    tasks = {t["id"]: t for t in await task_service.get_tasks_by_ids(task_ids=[a["task_id"] for a in applications])}
    names = await profile_service.get_usernames(user_ids=[t["creator_id"] for t in tasks.values()])

    return [
        AppliedTask(
            task=Task(**task_state_machine.redact_codes(tasks[application["task_id"]], user_id)),
            creator_name=names[tasks[application["task_id"]]["creator_id"]],
            application_status=application["status"],
        )
        for application in applications
        if application["task_id"] in tasks
    ]


async def _get_received_applications(*, created_tasks: list[dict[str, Any]]) -> list[ReceivedApplication]:
    if not created_tasks:
        return []

    titles = {t["id"]: t["title"] for t in created_tasks}
    applications = await application_service.get_applications_for_tasks(task_ids=list(titles))
    if not applications:
        return []

    names = await profile_service.get_usernames(user_ids=[a["applicant_id"] for a in applications])
    return [
        ReceivedApplication(
            **application,
            task_title=titles.get(application["task_id"], constants.UNKNOWN_TASK_TITLE),
            applicant_name=names[application["applicant_id"]],
        )
        for application in applications
    ]


async def get_dashboard(*, user_id: str) -> UserDashboard:
    """Build the task page aggregate for a user.

    Returns:
        Created tasks, applied tasks with application status, received
        applications, active tasks (created or doing) and pending rating prompts
    """
    with span("dashboard_service.get_dashboard"):
        created = await task_service.get_tasks_created_by(user_id=user_id)
        doing = await task_service.get_tasks_assigned_to(user_id=user_id, status=TaskStatus.ACTIVE)
        active = _newest_first([t for t in created if t["status"] == TaskStatus.ACTIVE] + doing)

        return UserDashboard(
            user_id=user_id,
            created_tasks=[Task(**task_state_machine.redact_codes(t, user_id)) for t in created],
            applied_tasks=await _get_applied_tasks(user_id=user_id),
            received_applications=await _get_received_applications(created_tasks=created),
            active_tasks=[Task(**task_state_machine.redact_codes(t, user_id)) for t in active],
            rating_prompts=await rating_service.get_pending_rating_prompts(user_id=user_id),
        )


class DashboardCache:
    """Read-through cache of user dashboards, invalidated by the change feed."""

    WATCHED_TABLES = ("tasks", "task_applications")

    def __init__(self) -> None:
        self._entries: dict[str, UserDashboard] = {}
        self._subscriptions: list[change_feed.Subscription] = []
        self._invalidations = 0

    @property
    def is_watching(self) -> bool:
        return bool(self._subscriptions)

    def get_health_status(self) -> dict[str, Any]:
        return {
            "watching": self.is_watching,
            "entries": len(self._entries),
            "invalidations": self._invalidations,
        }

    def start(self) -> None:
        """Subscribe to changes on the watched tables."""
        if self._subscriptions:
            return
        self._subscriptions = [change_feed.subscribe_changes(table, maxsize=1) for table in self.WATCHED_TABLES]
        logger.info("dashboard_cache_started", extra={"tables": list(self.WATCHED_TABLES)})

    def stop(self) -> None:
        """Release subscriptions and drop all entries."""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        self._entries.clear()
        logger.info("dashboard_cache_stopped")

    def invalidate(self) -> None:
        """Drop every cached dashboard."""
        if self._entries:
            logger.debug("dashboard_cache_invalidated", extra={"entries": len(self._entries)})
        self._entries.clear()
        self._invalidations += 1

    def _consume_changes(self) -> None:
        changed = False
        for subscription in self._subscriptions:
            if subscription.drain_nowait():
                changed = True
        if changed:
            self.invalidate()

    async def get(self, *, user_id: str) -> UserDashboard:
        """Return the user's dashboard, re-fetching after any watched change."""
        if not self._subscriptions:
            return await get_dashboard(user_id=user_id)

        self._consume_changes()
        cached = self._entries.get(user_id)
        if cached is not None:
            logger.debug("dashboard_cache_hit", extra={"user_id": user_id})
            return cached

        dashboard = await get_dashboard(user_id=user_id)
        self._entries[user_id] = dashboard
        return dashboard


# Global dashboard cache instance, started by the application lifespan
dashboard_cache = DashboardCache()
