"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from tablequeue.constants import (
    METRIC_HANDLING_DURATION,
    METRIC_MESSAGES_ACKNOWLEDGED,
    METRIC_MESSAGES_CLAIMED,
    METRIC_MESSAGES_ENQUEUED,
    METRIC_MESSAGES_REJECTED,
    METRIC_QUEUE_DEPTH,
    METRIC_SCHEMA_SETUPS,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for queue transports.

    Collects metrics for:
    - Messages enqueued, claimed, acknowledged and rejected per queue
    - Claimable queue depth
    - Schema provisioning runs
    - Handler execution duration
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of claimable messages in the queue",
            ["queue_name"],
            registry=self._registry,
        )

        self.messages_enqueued = Counter(
            METRIC_MESSAGES_ENQUEUED,
            "Total number of messages enqueued",
            ["queue_name"],
            registry=self._registry,
        )

        self.messages_claimed = Counter(
            METRIC_MESSAGES_CLAIMED,
            "Total number of messages claimed by consumers",
            ["queue_name"],
            registry=self._registry,
        )

        self.messages_acknowledged = Counter(
            METRIC_MESSAGES_ACKNOWLEDGED,
            "Total number of messages acknowledged",
            ["queue_name"],
            registry=self._registry,
        )

        self.messages_rejected = Counter(
            METRIC_MESSAGES_REJECTED,
            "Total number of messages rejected",
            ["queue_name"],
            registry=self._registry,
        )

        self.schema_setups = Counter(
            METRIC_SCHEMA_SETUPS,
            "Total number of queue table provisioning runs",
            ["table_name"],
            registry=self._registry,
        )

        self.handling_duration = Histogram(
            METRIC_HANDLING_DURATION,
            "Message handling duration in seconds",
            ["message_type", "status"],
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
            registry=self._registry,
        )

    def record_enqueued(self, queue_name: str) -> None:
        """Record an enqueued message."""
        self.messages_enqueued.labels(queue_name=queue_name).inc()

    def record_claimed(self, queue_name: str) -> None:
        """Record a claimed message."""
        self.messages_claimed.labels(queue_name=queue_name).inc()

    def record_acknowledged(self, queue_name: str) -> None:
        self.messages_acknowledged.labels(queue_name=queue_name).inc()

    def record_rejected(self, queue_name: str) -> None:
        self.messages_rejected.labels(queue_name=queue_name).inc()

    def record_schema_setup(self, table_name: str) -> None:
        self.schema_setups.labels(table_name=table_name).inc()

    def record_handled(
        self,
        message_type: str,
        status: str,
        duration_seconds: float,
    ) -> None:
        """Record the outcome of handling one message."""
        self.handling_duration.labels(
            message_type=message_type,
            status=status,
        ).observe(duration_seconds)

    def update_queue_depth(self, queue_name: str, depth: int) -> None:
        """Update the claimable depth of a queue."""
        self.queue_depth.labels(queue_name=queue_name).set(depth)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics(registry: CollectorRegistry | None = None) -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Args:
        registry: Optional registry for the first collector created.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector(registry)
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
