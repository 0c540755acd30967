"""Inbound message model.

Messages come from an external, ordered transport. The compiler consumes only
the body text and the metadata below; the subject tag is a routing hint that
is supplied by the transport, never re-derived here.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def to_utc(dt: datetime) -> datetime:
    """Return an aware UTC datetime. Naive values are interpreted as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class InboundMessage(BaseModel):
    """A single message delivered to a session.

    ``sequence`` is the insertion order assigned by the operation log when the
    message is recorded. It is the tie-break for equal timestamps.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message_id: str
    session_id: str = Field(alias="thread_id")
    sender: str
    timestamp: datetime
    subject: str = ""
    body: str = ""
    sequence: Optional[int] = None

    @field_validator("timestamp", mode="after")
    @classmethod
    def _normalize_timestamp(cls, v: datetime) -> datetime:
        return to_utc(v)

    def with_sequence(self, sequence: int) -> InboundMessage:
        """Return a copy stamped with its log insertion sequence."""
        return self.model_copy(update={"sequence": sequence})

    def __repr__(self) -> str:
        return (
            f"InboundMessage({self.message_id!r} from {self.sender!r} "
            f"at {self.timestamp.isoformat()})"
        )
