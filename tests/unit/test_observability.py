"""
Unit tests for metrics and logging helpers.
"""

from datetime import datetime

import pytest
import structlog
from prometheus_client import CollectorRegistry

from tablequeue.config import Settings
from tablequeue.observability.logging import (
    bind_message_context,
    clear_context,
    get_logger,
    setup_logging,
)
from tablequeue.observability.metrics import MetricsCollector
from tablequeue.types.message import QueuedMessage


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    @pytest.fixture
    def registry(self) -> CollectorRegistry:
        return CollectorRegistry()

    @pytest.fixture
    def metrics(self, registry: CollectorRegistry) -> MetricsCollector:
        return MetricsCollector(registry)

    def test_counters_by_queue(self, metrics: MetricsCollector, registry: CollectorRegistry):
        metrics.record_enqueued("default")
        metrics.record_enqueued("default")
        metrics.record_claimed("default")
        metrics.record_acknowledged("default")
        metrics.record_rejected("high")

        sample = registry.get_sample_value
        assert sample("messages_enqueued_total", {"queue_name": "default"}) == 2
        assert sample("messages_claimed_total", {"queue_name": "default"}) == 1
        assert sample("messages_acknowledged_total", {"queue_name": "default"}) == 1
        assert sample("messages_rejected_total", {"queue_name": "high"}) == 1

    def test_queue_depth_is_a_gauge(self, metrics: MetricsCollector, registry: CollectorRegistry):
        metrics.update_queue_depth("default", 5)
        metrics.update_queue_depth("default", 2)

        assert registry.get_sample_value("queue_depth", {"queue_name": "default"}) == 2

    def test_handling_duration(self, metrics: MetricsCollector, registry: CollectorRegistry):
        metrics.record_handled("OrderPlaced", "succeeded", 0.2)

        assert registry.get_sample_value(
            "message_handling_seconds_count",
            {"message_type": "OrderPlaced", "status": "succeeded"},
        ) == 1

    def test_exposition(self, metrics: MetricsCollector):
        metrics.record_schema_setup("messenger_messages")

        output = metrics.get_metrics().decode()

        assert 'schema_setups_total{table_name="messenger_messages"} 1.0' in output
        assert metrics.get_content_type().startswith("text/plain")


class TestLogging:
    """Tests for structured logging helpers."""

    def test_bind_and_clear_message_context(self):
        setup_logging(Settings(log_format="console", log_level="DEBUG"))
        now = datetime(2024, 1, 1, 12, 0, 0)
        message = QueuedMessage(
            id="7",
            body="Hi",
            headers={"type": "OrderPlaced"},
            queue_name="default",
            created_at=now,
            available_at=now,
            delivered_at=now,
        )

        bind_message_context(message, "async")
        bound = structlog.contextvars.get_contextvars()

        assert bound == {
            "message_id": "7",
            "message_type": "OrderPlaced",
            "queue_name": "default",
            "transport": "async",
        }

        get_logger(__name__).info("handling")
        clear_context()

        assert structlog.contextvars.get_contextvars() == {}
