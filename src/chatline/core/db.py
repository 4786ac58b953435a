from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Self
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
from pymongo.asynchronous.cursor import AsyncCursor
from pymongo.errors import PyMongoError

from chatline.errors import StorageError


class MongoModel(BaseModel):
    id: UUID = Field(alias="_id", serialization_alias="id", default_factory=uuid4)

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        json_schema_serialization_defaults_required=True,
    )

    def to_mongo(self) -> dict[str, Any]:
        """Convert the model to a dictionary for MongoDB storage with _id field."""
        data = self.model_dump()
        if "id" in data:
            data["_id"] = data.pop("id")  # Rename id → _id for MongoDB
        return data

    @classmethod
    async def list_cursor(cls, cursor: AsyncCursor[dict[str, Any]]) -> list[Self]:
        """Iterate over an AsyncCursor and return a list of model instances."""
        return [cls.model_validate(item) async for item in cursor]


class SequencedMongoModel(MongoModel):
    """Document keyed by a monotonically increasing integer instead of a UUID.

    The id is allocated by CounterService before insert and doubles as a delivery cursor.
    """

    id: int = Field(alias="_id", serialization_alias="id", ge=1)  # type: ignore[assignment]


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Translate driver failures into StorageError so callers don't depend on pymongo."""
    try:
        yield
    except PyMongoError as e:
        raise StorageError(f"{operation} failed: {e}") from e
