"""
Type definitions for the queue.
"""

from tablequeue.types.message import (
    Envelope,
    HandlerResult,
    MessageContext,
    QueuedMessage,
)

__all__ = [
    "QueuedMessage",
    "Envelope",
    "HandlerResult",
    "MessageContext",
]
