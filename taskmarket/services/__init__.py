from taskmarket.services import (
    application_service,
    chat_service,
    dashboard_service,
    profile_service,
    rating_service,
    task_service,
    verification_service,
)


__all__ = [
    "application_service",
    "chat_service",
    "dashboard_service",
    "profile_service",
    "rating_service",
    "task_service",
    "verification_service",
]
