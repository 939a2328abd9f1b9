"""
Message-related type definitions.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from tablequeue.constants import DATETIME_FORMAT, TYPE_HEADER


@dataclass
class QueuedMessage:
    """
    A message row as stored in the queue table.

    Headers are decoded into a mapping; the body is returned exactly as it
    was enqueued.
    """

    id: str
    body: str
    headers: dict[str, str]
    queue_name: str
    created_at: datetime
    available_at: datetime
    delivered_at: datetime | None = None

    @property
    def message_type(self) -> str | None:
        """Get the message type header, if present."""
        return self.headers.get(TYPE_HEADER)

    @property
    def is_delivered(self) -> bool:
        """Check if the message has been claimed at least once."""
        return self.delivered_at is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert the message to a dictionary for administrative output."""
        return {
            "id": self.id,
            "body": self.body,
            "headers": dict(self.headers),
            "queue_name": self.queue_name,
            "created_at": _format(self.created_at),
            "available_at": _format(self.available_at),
            "delivered_at": _format(self.delivered_at),
        }


def _format(value: datetime | None) -> str | None:
    return value.strftime(DATETIME_FORMAT) if value is not None else None


class Envelope(BaseModel):
    """
    An encoded message ready to be sent to one or more transports.
    Produced by the serializer of the dispatch layer.
    """

    body: str
    headers: dict[str, str] = Field(default_factory=dict)
    delay_ms: int = Field(default=0, ge=0)

    @property
    def message_type(self) -> str | None:
        """Get the message type header, if present."""
        return self.headers.get(TYPE_HEADER)


class HandlerResult(BaseModel):
    """
    Result of message handling.
    Returned by handlers after processing.
    """

    success: bool
    output: dict[str, Any] | None = None
    error: str | None = None


@dataclass
class MessageContext:
    """
    Context passed to handlers during message processing.
    """

    message: QueuedMessage
    transport: str
    received_at: datetime
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def message_id(self) -> str:
        return self.message.id

    @property
    def message_type(self) -> str | None:
        return self.message.message_type
