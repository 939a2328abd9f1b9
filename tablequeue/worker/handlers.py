"""
Message handler registry.

Handlers are looked up by the message ``type`` header in an explicit
registry built at startup. Handlers must be idempotent - a message may be
delivered again when a consumer crashes before acknowledging it.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping

from tablequeue.errors import ConfigurationError
from tablequeue.types.message import HandlerResult, MessageContext

logger = logging.getLogger(__name__)

# Type alias for message handler functions
MessageHandler = Callable[[MessageContext], Awaitable[HandlerResult]]


class HandlerRegistry:
    """Explicit mapping from message type to handler."""

    def __init__(self, handlers: Mapping[str, MessageHandler] | None = None):
        """
        Initialize the registry.

        Args:
            handlers: Optional initial message type to handler mapping.
        """
        self._handlers: dict[str, MessageHandler] = {}
        for message_type, handler in (handlers or {}).items():
            self.add(message_type, handler)

    def add(self, message_type: str, handler: MessageHandler) -> None:
        """
        Register a handler for a message type.

        Raises:
            ConfigurationError: If the type already has a handler.
        """
        if message_type in self._handlers:
            raise ConfigurationError(
                f"A handler is already registered for message type {message_type}"
            )
        self._handlers[message_type] = handler
        logger.debug(f"Registered handler for message type: {message_type}")

    def register(self, message_type: str) -> Callable[[MessageHandler], MessageHandler]:
        """
        Decorator to register a message handler.

        Example:
            @registry.register("order.placed")
            async def handle_order_placed(context: MessageContext) -> HandlerResult:
                ...
        """

        def decorator(handler: MessageHandler) -> MessageHandler:
            self.add(message_type, handler)
            return handler

        return decorator

    def get(self, message_type: str | None) -> MessageHandler | None:
        """Get the handler for a message type."""
        if message_type is None:
            return None
        return self._handlers.get(message_type)

    def types(self) -> list[str]:
        """List all registered message types."""
        return list(self._handlers)

    def __contains__(self, message_type: str) -> bool:
        return message_type in self._handlers


async def execute(registry: HandlerRegistry, context: MessageContext) -> HandlerResult:
    """
    Handle a message using the handler registered for its type.

    Args:
        registry: The handler registry.
        context: The message context.

    Returns:
        HandlerResult from the handler, or a failed result if no handler is
        registered or the handler raised.
    """
    message_type = context.message_type
    handler = registry.get(message_type)

    if handler is None:
        logger.error(
            f"No handler for message type: {message_type}",
            extra={"message_id": context.message_id},
        )
        return HandlerResult(
            success=False,
            error=f"No handler registered for message type: {message_type}",
        )

    try:
        return await handler(context)
    except Exception as e:
        logger.exception(
            "Handler raised exception",
            extra={"message_id": context.message_id, "error": str(e)},
        )
        return HandlerResult(
            success=False,
            error=f"Handler exception: {str(e)}",
        )
