"""Exception types for the table-backed queue."""


class TableQueueError(Exception):
    """Base exception for all tablequeue errors."""

    pass


class ConfigurationError(TableQueueError):
    """Raised when a DSN, transport option or registry entry is invalid."""

    pass


class TransportError(TableQueueError):
    """Raised when the underlying store rejects or fails a query."""

    pass


class SchemaMissingError(TransportError):
    """Raised when the queue table does not exist and cannot be provisioned."""

    def __init__(self, table_name: str, message: str | None = None):
        self.table_name = table_name
        if message is None:
            message = f"Queue table {table_name} does not exist"
        super().__init__(message)


class RoutingError(TableQueueError):
    """Raised when no sender is configured for a message type."""

    def __init__(self, message_type: str, message: str | None = None):
        self.message_type = message_type
        if message is None:
            message = f"No sender configured for message type {message_type}"
        super().__init__(message)
