"""Chat service for direct conversations between task parties."""

import logging
from typing import Any

from taskmarket.core import db_client
from taskmarket.core.errors import PermissionDeniedError, ValidationError, ValidationReason
from taskmarket.core.logging import span
from taskmarket.domain.chat import Chat
from taskmarket.domain.create_models import utc_now_iso
from taskmarket.models.service_models import ChatSummary, MessageView
from taskmarket.services import profile_service


logger = logging.getLogger(__name__)


def _pair_filter(user_id: str, other_user_id: str) -> str:
    a = db_client.sanitize_param(user_id)
    b = db_client.sanitize_param(other_user_id)
    # Also matches (a, a) and (b, b); callers filter on the unordered pair
    return f'(user1_id = "{a}" || user1_id = "{b}") && (user2_id = "{a}" || user2_id = "{b}")'


async def _get_participant_chat(*, chat_id: str, user_id: str) -> Chat:
    chat = Chat(**await db_client.get_record(collection="chats", record_id=chat_id))
    if not chat.has_participant(user_id):
        msg = f"User {user_id} is not a participant of chat {chat_id}"
        raise PermissionDeniedError(msg)
    return chat


async def get_or_create_chat(*, user_id: str, other_user_id: str) -> dict[str, Any]:
    """Return the chat between two users, creating it on first contact.

    Raises:
        ValidationError: SELF_CHAT if both users are the same
        NotFoundError: If the other user has no profile
    """
    with span("chat_service.get_or_create_chat"):
        if user_id == other_user_id:
            msg = "You cannot start a chat with yourself"
            raise ValidationError(ValidationReason.SELF_CHAT, msg)

        async with db_client.atomic() as tx:
            await tx.get_record(collection="profiles", record_id=user_id)
            await tx.get_record(collection="profiles", record_id=other_user_id)

            candidates = await tx.list_records(
                collection="chats", filter_query=_pair_filter(user_id, other_user_id), sort="created_at"
            )
            for candidate in candidates:
                if {candidate["user1_id"], candidate["user2_id"]} == {user_id, other_user_id}:
                    return candidate

            chat = await tx.create_record(
                collection="chats",
                data={"user1_id": int(user_id), "user2_id": int(other_user_id), "created_at": utc_now_iso()},
            )

        logger.info("Created chat %s between %s and %s", chat["id"], user_id, other_user_id)
        return chat


async def list_chats(*, user_id: str) -> list[ChatSummary]:
    """List the user's chats, newest first, with last message and unread count."""
    with span("chat_service.list_chats"):
        sanitized = db_client.sanitize_param(user_id)
        chats = [
            Chat(**record)
            for record in await db_client.list_all_records(
                collection="chats",
                filter_query=f'(user1_id = "{sanitized}" || user2_id = "{sanitized}")',
                sort="-created_at",
            )
        ]
        if not chats:
            return []

        names = await profile_service.get_usernames(user_ids=[chat.other_participant(user_id) for chat in chats])

        summaries = []
        for chat in chats:
            chat_filter = f'chat_id = "{db_client.sanitize_param(chat.id)}"'
            last_message = await db_client.get_first_record(
                collection="messages", filter_query=chat_filter, sort="-timestamp"
            )
            unread_count = await db_client.count_records(
                collection="messages",
                filter_query=f'{chat_filter} && receiver_id = "{sanitized}" && read = "false"',
            )
            participant_id = chat.other_participant(user_id)
            summaries.append(
                ChatSummary(
                    id=chat.id,
                    participant_id=participant_id,
                    participant_name=names[participant_id],
                    last_message=last_message["content"] if last_message else None,
                    last_message_time=last_message["timestamp"] if last_message else None,
                    unread_count=unread_count,
                )
            )
        return summaries


async def send_message(*, chat_id: str, sender_id: str, content: str) -> dict[str, Any]:
    """Send a message to the other participant of a chat.

    Raises:
        ValidationError: EMPTY_MESSAGE if the content is blank
        NotFoundError: If the chat does not exist
        PermissionDeniedError: If the sender is not a participant
    """
    with span("chat_service.send_message"):
        content = content.strip()
        if not content:
            msg = "Message cannot be empty"
            raise ValidationError(ValidationReason.EMPTY_MESSAGE, msg)

        chat = await _get_participant_chat(chat_id=chat_id, user_id=sender_id)
        record = await db_client.create_record(
            collection="messages",
            data={
                "chat_id": int(chat.id),
                "sender_id": int(sender_id),
                "receiver_id": int(chat.other_participant(sender_id)),
                "content": content,
                "read": False,
                "timestamp": utc_now_iso(),
            },
        )
        logger.info("Message %s sent in chat %s", record["id"], chat_id)
        return record


async def get_messages(*, chat_id: str, user_id: str) -> list[MessageView]:
    """Get a chat's messages oldest first and mark those addressed to the user as read."""
    with span("chat_service.get_messages"):
        await _get_participant_chat(chat_id=chat_id, user_id=user_id)
        chat_filter = f'chat_id = "{db_client.sanitize_param(chat_id)}"'

        messages = await db_client.list_all_records(
            collection="messages",
            filter_query=chat_filter,
            sort="timestamp",
        )
        names = await profile_service.get_usernames(user_ids=[m["sender_id"] for m in messages])
        views = [MessageView(**message, sender_name=names[message["sender_id"]]) for message in messages]

        if any(not m["read"] and m["receiver_id"] == user_id for m in messages):
            async with db_client.atomic() as tx:
                marked = await tx.update_records(
                    collection="messages",
                    filter_query=(
                        f'{chat_filter} && receiver_id = "{db_client.sanitize_param(user_id)}" && read = "false"'
                    ),
                    data={"read": True},
                )
            logger.debug("Marked %d messages read in chat %s", marked, chat_id)

        return views
