"""Unit tests for chat_service module."""

import pytest

from taskmarket.core.config import Constants
from taskmarket.core.errors import NotFoundError, PermissionDeniedError, ValidationError, ValidationReason
from taskmarket.services import chat_service


@pytest.mark.unit
class TestGetOrCreateChat:
    """Tests for get_or_create_chat function."""

    async def test_same_chat_for_unordered_pair(self, parties):
        """Test the same chat is returned for either ordering of the pair."""
        a_id, b_id = parties["a"]["id"], parties["b"]["id"]

        created = await chat_service.get_or_create_chat(user_id=a_id, other_user_id=b_id)
        again = await chat_service.get_or_create_chat(user_id=b_id, other_user_id=a_id)

        assert created["id"] == again["id"]
        assert {created["user1_id"], created["user2_id"]} == {a_id, b_id}

    async def test_different_pairs_get_different_chats(self, parties):
        """Test different pairs get different chats."""
        ab = await chat_service.get_or_create_chat(user_id=parties["a"]["id"], other_user_id=parties["b"]["id"])
        ac = await chat_service.get_or_create_chat(user_id=parties["a"]["id"], other_user_id=parties["c"]["id"])

        assert ab["id"] != ac["id"]

    async def test_self_chat(self, parties):
        """Test chatting with yourself is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            await chat_service.get_or_create_chat(user_id=parties["a"]["id"], other_user_id=parties["a"]["id"])

        assert exc_info.value.reason == ValidationReason.SELF_CHAT

    async def test_unknown_other_user(self, parties):
        """Test chatting with an unknown user fails."""
        with pytest.raises(NotFoundError):
            await chat_service.get_or_create_chat(user_id=parties["a"]["id"], other_user_id="404")


@pytest.mark.unit
class TestMessages:
    """Tests for send_message and get_messages functions."""

    @pytest.fixture
    async def chat(self, parties):
        return await chat_service.get_or_create_chat(user_id=parties["a"]["id"], other_user_id=parties["b"]["id"])

    async def test_send_sets_receiver(self, parties, chat):
        """Test sending sets the other participant as receiver."""
        message = await chat_service.send_message(chat_id=chat["id"], sender_id=parties["a"]["id"], content=" Hi! ")

        assert message["receiver_id"] == parties["b"]["id"]
        assert message["content"] == "Hi!"
        assert message["read"] is False

    async def test_blank_message(self, parties, chat):
        """Test a blank message is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            await chat_service.send_message(chat_id=chat["id"], sender_id=parties["a"]["id"], content="   ")

        assert exc_info.value.reason == ValidationReason.EMPTY_MESSAGE

    async def test_outsider_cannot_send(self, parties, chat):
        """Test a non-participant cannot send."""
        with pytest.raises(PermissionDeniedError):
            await chat_service.send_message(chat_id=chat["id"], sender_id=parties["c"]["id"], content="hello")

    async def test_outsider_cannot_read(self, parties, chat):
        """Test a non-participant cannot read."""
        with pytest.raises(PermissionDeniedError):
            await chat_service.get_messages(chat_id=chat["id"], user_id=parties["c"]["id"])

    async def test_get_messages_oldest_first_and_marks_read(self, parties, chat):
        """Test messages come back oldest first and are marked read for the reader."""
        a_id, b_id = parties["a"]["id"], parties["b"]["id"]
        await chat_service.send_message(chat_id=chat["id"], sender_id=a_id, content="Are you still free?")
        await chat_service.send_message(chat_id=chat["id"], sender_id=b_id, content="Yes, on my way")

        views = await chat_service.get_messages(chat_id=chat["id"], user_id=b_id)

        assert [(v.sender_name, v.content) for v in views] == [
            ("alice", "Are you still free?"),
            ("bob", "Yes, on my way"),
        ]
        summaries_b = await chat_service.list_chats(user_id=b_id)
        summaries_a = await chat_service.list_chats(user_id=a_id)
        assert summaries_b[0].unread_count == 0
        assert summaries_a[0].unread_count == 1

    async def test_get_messages_returns_and_marks_every_page(self, parties, chat, monkeypatch):
        """Test long chats are returned in full and fully marked read."""
        monkeypatch.setattr(Constants, "MAX_PER_PAGE_LIMIT", 2)
        for i in range(5):
            await chat_service.send_message(chat_id=chat["id"], sender_id=parties["a"]["id"], content=f"update {i}")

        views = await chat_service.get_messages(chat_id=chat["id"], user_id=parties["b"]["id"])

        assert [v.content for v in views] == [f"update {i}" for i in range(5)]
        summaries = await chat_service.list_chats(user_id=parties["b"]["id"])
        assert summaries[0].unread_count == 0


@pytest.mark.unit
class TestListChats:
    """Tests for list_chats function."""

    async def test_summary_from_each_side(self, parties):
        """Test chat summaries show the other participant, last message and unread count."""
        a_id, b_id, c_id = parties["a"]["id"], parties["b"]["id"], parties["c"]["id"]
        older = await chat_service.get_or_create_chat(user_id=a_id, other_user_id=b_id)
        newer = await chat_service.get_or_create_chat(user_id=c_id, other_user_id=a_id)
        await chat_service.send_message(chat_id=older["id"], sender_id=b_id, content="Done!")
        await chat_service.send_message(chat_id=older["id"], sender_id=b_id, content="Code is 482913")

        summaries = await chat_service.list_chats(user_id=a_id)

        assert [s.id for s in summaries] == [newer["id"], older["id"]]
        assert summaries[0].participant_name == "carol"
        assert summaries[0].last_message is None
        assert summaries[0].unread_count == 0
        assert summaries[1].participant_id == b_id
        assert summaries[1].last_message == "Code is 482913"
        assert summaries[1].unread_count == 2

    async def test_no_chats(self, parties):
        """Test a user without chats gets an empty list."""
        assert await chat_service.list_chats(user_id=parties["c"]["id"]) == []
