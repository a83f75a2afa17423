"""
Base model for everything persisted in the document store.

Documents use camelCase field names (userId, amountPlanned, dueDate) while
Python code uses snake_case attributes. The document id is never stored
inside the document body; it is attached on read.

Money is Decimal in memory and a plain number in the store.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


ModelT = TypeVar("ModelT", bound="DocumentModel")


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_store_value(value: Any) -> Any:
    """Convert Python values to what the document store accepts."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: to_store_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_store_value(v) for v in value]
    return value


class DocumentModel(BaseModel):
    """
    Pydantic model that round-trips through a document store.

    `id` stays None until the store assigns one.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    id: Optional[str] = None

    @field_validator("*", mode="after")
    @classmethod
    def _normalize_datetimes(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return ensure_utc(v)
        return v

    def to_document(self) -> dict[str, Any]:
        """Serialize to a store document (camelCase keys, no id, no None values)."""
        data = self.model_dump(by_alias=True, exclude={"id"}, exclude_none=True)
        return to_store_value(data)

    @classmethod
    def from_document(cls: type[ModelT], doc_id: str, data: dict[str, Any]) -> ModelT:
        """Build a model from a store document and its id."""
        return cls.model_validate({**data, "id": doc_id})
