"""
Integration tests for worker message processing.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from tablequeue.config import get_settings
from tablequeue.errors import TransportError
from tablequeue.transport.store import QueueStore
from tablequeue.types.message import HandlerResult, MessageContext
from tablequeue.worker import HandlerRegistry, Worker


class TestWorkerIntegration:
    """Integration tests for the worker against a real store."""

    @pytest.fixture
    def handled(self) -> list[str]:
        return []

    @pytest.fixture
    def registry(self, handled: list[str]) -> HandlerRegistry:
        registry = HandlerRegistry()

        @registry.register("DummyMessage")
        async def handle_dummy(context: MessageContext) -> HandlerResult:
            handled.append(context.message.body)
            return HandlerResult(success=True)

        @registry.register("FailingMessage")
        async def handle_failing(context: MessageContext) -> HandlerResult:
            return HandlerResult(success=False, error="Intentional failure")

        return registry

    async def test_successful_message_is_acknowledged(
        self,
        store: QueueStore,
        registry: HandlerRegistry,
        handled: list[str],
    ):
        message_id = await store.enqueue("Hi", {"type": "DummyMessage"})
        worker = Worker({"default": store}, registry, poll_interval=0.01)

        assert await worker.run_once() == 1

        assert handled == ["Hi"]
        assert await store.find(message_id) is None

    async def test_failed_message_is_rejected(
        self,
        store: QueueStore,
        registry: HandlerRegistry,
    ):
        message_id = await store.enqueue("Hi", {"type": "FailingMessage"})
        worker = Worker({"default": store}, registry, poll_interval=0.01)

        assert await worker.run_once() == 1

        assert await store.find(message_id) is None

    async def test_unhandled_type_is_rejected(
        self,
        store: QueueStore,
        registry: HandlerRegistry,
    ):
        message_id = await store.enqueue("Hi", {"type": "Unknown"})
        worker = Worker({"default": store}, registry, poll_interval=0.01)

        await worker.run_once()

        assert await store.find(message_id) is None

    async def test_empty_queue(self, store: QueueStore, registry: HandlerRegistry):
        worker = Worker({"default": store}, registry, poll_interval=0.01)

        assert await worker.run_once() == 0

    async def test_poll_failure_is_logged_and_skipped(
        self,
        store: QueueStore,
        registry: HandlerRegistry,
        handled: list[str],
    ):
        broken = AsyncMock()
        broken.dequeue.side_effect = TransportError("connection refused")
        await store.enqueue("Hi", {"type": "DummyMessage"})
        worker = Worker({"broken": broken, "default": store}, registry, poll_interval=0.01)

        assert await worker.run_once() == 1
        assert handled == ["Hi"]

    async def test_memory_limit_stops_worker(
        self,
        store: QueueStore,
        registry: HandlerRegistry,
    ):
        await store.enqueue("first", {"type": "DummyMessage"})
        await store.enqueue("second", {"type": "DummyMessage"})
        worker = Worker(
            {"default": store},
            registry,
            poll_interval=0.01,
            memory_limit_mb=1,
        )

        await worker.start()

        assert worker.running is False
        assert await store.count() == 1

    async def test_start_and_stop(
        self,
        store: QueueStore,
        registry: HandlerRegistry,
        handled: list[str],
    ):
        await store.enqueue("Hi", {"type": "DummyMessage"})
        worker = Worker({"default": store}, registry, poll_interval=0.01)
        task = asyncio.create_task(worker.start())

        for _ in range(100):
            if handled:
                break
            await asyncio.sleep(0.01)

        await worker.stop()
        await asyncio.wait_for(task, timeout=1)

        assert handled == ["Hi"]
        assert await store.count() == 0

    async def test_refused_connection_is_logged_and_skipped(
        self,
        configuration,
        registry: HandlerRegistry,
    ):
        engine = MagicMock()
        engine.begin.side_effect = ConnectionRefusedError(111, "Connect call failed")
        unreachable = QueueStore(configuration, engine)
        worker = Worker({"default": unreachable}, registry, poll_interval=0.01)

        assert await worker.run_once() == 0

    async def test_request_stop_ends_loop(self, store: QueueStore, registry: HandlerRegistry):
        worker = Worker({"default": store}, registry, poll_interval=0.01)
        task = asyncio.create_task(worker.start())
        await asyncio.sleep(0.05)

        worker.request_stop()
        await asyncio.wait_for(task, timeout=1)

        assert worker.running is False


class TestWorkerSettings:
    """Tests for worker defaults."""

    async def test_explicit_zero_values_are_kept(self, store: QueueStore):
        worker = Worker({"default": store}, HandlerRegistry(), poll_interval=0, memory_limit_mb=0)

        assert worker.poll_interval == 0
        assert worker.memory_limit_mb == 0
        assert worker._memory_exceeded() is False

    async def test_defaults_come_from_settings(self, store: QueueStore):
        settings = get_settings()

        worker = Worker({"default": store}, HandlerRegistry())

        assert worker.poll_interval == settings.worker_poll_interval_seconds
        assert worker.memory_limit_mb == settings.worker_memory_limit_mb
