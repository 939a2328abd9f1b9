"""
Application constants.
Centralized location for all constant values used across the application.
"""

from typing import Any

# Transport options recognised in a DSN query string or explicit options
DEFAULT_OPTIONS: dict[str, Any] = {
    "table_name": "messenger_messages",
    "queue_name": "default",
    "redeliver_timeout": 3600,
    "auto_setup": True,
}
ALLOWED_OPTIONS: tuple[str, ...] = tuple(DEFAULT_OPTIONS)

# Persisted timestamps are second precision, no timezone suffix
DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Header carrying the message type used for routing and handler lookup
TYPE_HEADER = "type"

# Routing fallback key
ROUTING_FALLBACK = "*"

# Worker defaults
DEFAULT_POLL_INTERVAL_SECONDS = 1.0

# Metrics names
METRIC_QUEUE_DEPTH = "queue_depth"
METRIC_MESSAGES_ENQUEUED = "messages_enqueued_total"
METRIC_MESSAGES_CLAIMED = "messages_claimed_total"
METRIC_MESSAGES_ACKNOWLEDGED = "messages_acknowledged_total"
METRIC_MESSAGES_REJECTED = "messages_rejected_total"
METRIC_SCHEMA_SETUPS = "schema_setups_total"
METRIC_HANDLING_DURATION = "message_handling_seconds"

# Trace span names
SPAN_ENQUEUE = "enqueue_message"
SPAN_DEQUEUE = "dequeue_message"
SPAN_ACK = "ack_message"
SPAN_REJECT = "reject_message"
SPAN_HANDLE = "handle_message"
SPAN_ENSURE_SCHEMA = "ensure_schema"
