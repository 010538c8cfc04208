"""Change events delivered by the source collection's change stream.

The indexer consumes the document key always and the new image for
INSERT/MODIFY. The old image is carried for completeness but never read:
deletes go through the keys-index reverse lookup instead.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from kvsearch.errors import UnknownEventError


class EventName(str, Enum):
    INSERT = "INSERT"
    MODIFY = "MODIFY"
    REMOVE = "REMOVE"


class ChangeEvent(BaseModel):
    """Value object for one row-level change.

    ``keys``, ``new_image`` and ``old_image`` are typed attribute maps in
    DynamoDB wire form, e.g. ``{"Id": {"N": "101"}}``.
    """

    model_config = ConfigDict(frozen=True)

    event_name: EventName
    keys: dict[str, dict[str, Any]]
    new_image: dict[str, dict[str, Any]] | None = None
    old_image: dict[str, dict[str, Any]] | None = None

    @classmethod
    def from_stream_record(cls, record: Mapping[str, Any]) -> ChangeEvent:
        """Build an event from a raw stream record (``eventName`` + ``dynamodb`` payload)."""

        raw_name = record.get("eventName")
        try:
            event_name = EventName(raw_name)
        except ValueError:
            raise UnknownEventError(f"Unknown eventName: {raw_name}") from None

        payload = record.get("dynamodb") or {}
        return cls(
            event_name=event_name,
            keys=payload.get("Keys") or {},
            new_image=payload.get("NewImage"),
            old_image=payload.get("OldImage"),
        )

    @classmethod
    def coerce(cls, record: ChangeEvent | Mapping[str, Any]) -> ChangeEvent:
        if isinstance(record, ChangeEvent):
            return record
        return cls.from_stream_record(record)


class IndexMetadata(BaseModel):
    """Corpus statistics read from the metadata record."""

    model_config = ConfigDict(frozen=True)

    document_count: int = 0
    token_count_by_attribute: dict[str, int] = Field(default_factory=dict)
