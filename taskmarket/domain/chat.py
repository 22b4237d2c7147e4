"""Chat and message domain models."""

from pydantic import BaseModel, Field


class Chat(BaseModel):
    """Conversation between two users."""

    id: str
    user1_id: str
    user2_id: str
    created_at: str

    def other_participant(self, user_id: str) -> str:
        return self.user2_id if self.user1_id == user_id else self.user1_id

    def has_participant(self, user_id: str) -> bool:
        return user_id in (self.user1_id, self.user2_id)


class Message(BaseModel):
    """Single chat message."""

    id: str
    chat_id: str
    sender_id: str
    receiver_id: str
    content: str
    read: bool = Field(default=False)
    timestamp: str
