"""
Table-backed message queue.

A durable point-to-point queue on top of a transactional relational store,
with exclusive claims, visibility delays and redelivery of abandoned
messages.
"""

__version__ = "1.0.0"

from tablequeue.errors import (  # noqa: E402
    ConfigurationError,
    RoutingError,
    SchemaMissingError,
    TableQueueError,
    TransportError,
)
from tablequeue.routing import SendersLocator  # noqa: E402
from tablequeue.transport import (  # noqa: E402
    QueueConfiguration,
    QueueStore,
    resolve_configuration,
)
from tablequeue.types import Envelope, HandlerResult, MessageContext, QueuedMessage  # noqa: E402
from tablequeue.worker import HandlerRegistry, Worker  # noqa: E402

__all__ = [
    "TableQueueError",
    "ConfigurationError",
    "TransportError",
    "SchemaMissingError",
    "RoutingError",
    "SendersLocator",
    "QueueConfiguration",
    "QueueStore",
    "resolve_configuration",
    "Envelope",
    "HandlerResult",
    "MessageContext",
    "QueuedMessage",
    "HandlerRegistry",
    "Worker",
]
