"""Chat and direct message models.

Message ids are sequential integers allocated per message kind; clients use the
highest id they have seen as a resume cursor.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from chatline.core.db import SequencedMongoModel
from chatline.utils import now


class ChatMessage(SequencedMongoModel):
    """Broadcast chat message visible to every user."""

    user_id: UUID
    message: str
    timestamp: datetime = Field(default_factory=now)


class DirectMessage(SequencedMongoModel):
    """Private message between two users.

    is_read flips false → true once, when the recipient reads the conversation.
    """

    sender_id: UUID
    recipient_id: UUID
    message: str
    timestamp: datetime = Field(default_factory=now)
    is_read: bool = False


class ChatMessageView(BaseModel):
    """Chat message with author name (API and stream representation)."""

    id: int = Field(..., description="Sequential message ID")
    message: str = Field(..., description="Message text")
    timestamp: datetime = Field(..., description="When the message was sent")
    username: str = Field(..., description="Author username")
    user_id: UUID = Field(..., description="Author ID")


class DirectMessageView(BaseModel):
    """Direct message with both participants' names (API and stream representation)."""

    id: int = Field(..., description="Sequential message ID")
    message: str = Field(..., description="Message text")
    timestamp: datetime = Field(..., description="When the message was sent")
    is_read: bool = Field(..., description="Whether the recipient has read the message")
    sender_username: str
    sender_id: UUID
    recipient_username: str
    recipient_id: UUID
