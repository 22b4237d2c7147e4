"""Profile service for usernames and per-role ratings."""

import logging
from typing import Any

from taskmarket.core import db_client
from taskmarket.core.config import constants
from taskmarket.core.logging import span
from taskmarket.domain.create_models import ProfileCreate, utc_now_iso


logger = logging.getLogger(__name__)

PROFILE_ID_BATCH_SIZE = 100


async def create_profile(*, username: str) -> dict[str, Any]:
    """Create a profile with both ratings unset.

    Raises:
        pydantic.ValidationError: If the username is not usable
    """
    with span("profile_service.create_profile"):
        profile = ProfileCreate(username=username)
        record = await db_client.create_record(
            collection="profiles",
            data={
                "username": profile.username,
                "requestor_rating": constants.RATING_UNRATED,
                "doer_rating": constants.RATING_UNRATED,
                "created_at": utc_now_iso(),
            },
        )
        logger.info("Created profile %s (%s)", record["id"], profile.username)
        return record


async def get_profile(*, user_id: str) -> dict[str, Any]:
    """Get a profile by user ID.

    Raises:
        NotFoundError: If no profile exists for the user
    """
    with span("profile_service.get_profile"):
        return await db_client.get_record(collection="profiles", record_id=user_id)


async def get_usernames(*, user_ids: list[str]) -> dict[str, str]:
    """Resolve usernames in batches; unknown IDs map to the display fallback."""
    with span("profile_service.get_usernames"):
        unique_ids = list(dict.fromkeys(uid for uid in user_ids if uid))
        names: dict[str, str] = {}

        for batch_start in range(0, len(unique_ids), PROFILE_ID_BATCH_SIZE):
            batch = unique_ids[batch_start : batch_start + PROFILE_ID_BATCH_SIZE]
            profiles = await db_client.list_records(
                collection="profiles",
                filter_query=db_client.build_in_filter("id", batch),
                per_page=len(batch),
            )
            names.update({p["id"]: p["username"] for p in profiles})

        return {uid: names.get(uid, constants.UNKNOWN_USER_NAME) for uid in unique_ids}
