"""Auto-incrementing counters for sequential message ids."""

from enum import StrEnum

from chatline.core.db import MongoModel


class CounterType(StrEnum):
    """Types of entities that use sequential numbering."""

    CHAT_MESSAGE = "chat_message"
    DIRECT_MESSAGE = "direct_message"


class Counter(MongoModel):
    """Atomic counter for sequential ids.

    Uses MongoDB atomic operations to prevent duplicates.
    Indexed on counter_type - unique.
    """

    counter_type: CounterType
    seq: int = 0  # Current value; next id will be seq + 1
