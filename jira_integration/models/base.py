"""Base model for documents persisted in MongoDB."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from pydantic import BaseModel, ConfigDict, Field
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def plain_values(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: plain_values(v) for k, v in value.items()}
    if isinstance(value, list):
        return [plain_values(v) for v in value]
    return value


class Document(BaseModel):
    """Model stored under a string UUID ``_id``."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")

    def to_document(self) -> dict:
        """Mongo-ready dict: ``_id`` alias, enums as their values, datetimes untouched."""
        return plain_values(self.model_dump(by_alias=True))
