"""
Worker process for consuming queued messages.

The worker polls its receivers, hands each claimed message to the handler
registered for its type, then acknowledges or rejects it.
"""

import asyncio
import logging
import os
import signal
import time
from collections.abc import Mapping

import psutil

from tablequeue.config import get_settings
from tablequeue.constants import SPAN_HANDLE
from tablequeue.db import build_assets_filter, close_db, init_db
from tablequeue.errors import TransportError
from tablequeue.observability.logging import (
    bind_message_context,
    clear_context,
    setup_logging,
)
from tablequeue.observability.metrics import get_metrics
from tablequeue.observability.tracing import get_tracer, instrument_sqlalchemy
from tablequeue.transport.configuration import resolve_configuration
from tablequeue.transport.store import QueueStore
from tablequeue.transport.visibility import utcnow
from tablequeue.types.message import MessageContext, QueuedMessage
from tablequeue.worker.handlers import HandlerRegistry, execute

logger = logging.getLogger(__name__)


class Worker:
    """
    Message worker that polls receivers and dispatches to handlers.

    Features:
    - One claim per receiver per round, receivers polled in order
    - Acknowledge on success, reject on failure
    - Graceful shutdown on SIGTERM/SIGINT
    - Optional stop once process memory reaches a limit
    """

    def __init__(
        self,
        receivers: Mapping[str, QueueStore],
        registry: HandlerRegistry,
        poll_interval: float | None = None,
        memory_limit_mb: int | None = None,
    ):
        """
        Initialize the worker.

        Args:
            receivers: Stores to consume from, by transport alias.
            registry: Handlers by message type.
            poll_interval: Seconds between polls when all queues are empty.
            memory_limit_mb: Stop after a message once RSS reaches this;
                0 disables the limit.
        """
        settings = get_settings()

        self.receivers = dict(receivers)
        self.registry = registry
        self.poll_interval = (
            settings.worker_poll_interval_seconds if poll_interval is None else poll_interval
        )
        self.memory_limit_mb = (
            settings.worker_memory_limit_mb if memory_limit_mb is None else memory_limit_mb
        )

        self._running = False
        self._metrics = get_metrics()

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the worker and poll until stopped."""
        logger.info(
            "Worker starting",
            extra={"transports": list(self.receivers), "pid": os.getpid()},
        )

        self._running = True

        while self._running:
            try:
                handled = await self.run_once()
                if handled == 0 and self._running:
                    await asyncio.sleep(self.poll_interval)

            except Exception as e:
                logger.exception(f"Error in worker loop: {e}")
                await asyncio.sleep(self.poll_interval)

        logger.info("Worker stopped")

    def request_stop(self) -> None:
        """Ask the worker to stop after the current round."""
        logger.info("Worker stopping")
        self._running = False

    async def stop(self) -> None:
        """Stop the worker after the current round."""
        self.request_stop()

    async def run_once(self) -> int:
        """
        Poll every receiver once.

        Returns:
            Number of messages handled.
        """
        handled = 0
        for alias, store in self.receivers.items():
            try:
                message = await store.dequeue()
            except TransportError as e:
                logger.error(
                    "Failed to poll transport",
                    extra={"transport": alias, "error": str(e)},
                )
                continue

            if message is None:
                continue

            await self._handle(alias, store, message)
            handled += 1

            if self._memory_exceeded():
                await self.stop()
                break

        return handled

    async def _handle(self, alias: str, store: QueueStore, message: QueuedMessage) -> None:
        """
        Handle a single message and settle it.

        Transport failures while settling are logged; the message becomes
        claimable again once its redeliver timeout elapses.
        """
        start_time = time.monotonic()
        context = MessageContext(
            message=message,
            transport=alias,
            received_at=utcnow(),
        )
        bind_message_context(message, alias)

        try:
            with get_tracer().start_as_current_span(SPAN_HANDLE) as span:
                span.set_attribute("message_id", message.id)
                span.set_attribute("transport", alias)
                span.set_attribute("message_type", message.message_type or "")

                result = await execute(self.registry, context)

            duration = time.monotonic() - start_time
            if result.success:
                await store.acknowledge(message.id)
                logger.info(
                    "Message handled",
                    extra={"duration": f"{duration:.2f}s"},
                )
            else:
                await store.reject(message.id)
                logger.warning(
                    "Message handling failed",
                    extra={"error": result.error},
                )

            self._metrics.record_handled(
                message_type=message.message_type or "unknown",
                status="succeeded" if result.success else "failed",
                duration_seconds=duration,
            )

        except TransportError as e:
            logger.error(
                "Failed to settle message",
                extra={"message_id": message.id, "error": str(e)},
            )

        finally:
            clear_context()

    def _memory_exceeded(self) -> bool:
        if not self.memory_limit_mb:
            return False

        memory_mb = psutil.Process(os.getpid()).memory_info().rss / (1024 * 1024)
        if memory_mb >= self.memory_limit_mb:
            logger.warning(
                "Memory limit reached",
                extra={"memory_mb": round(memory_mb, 1), "limit_mb": self.memory_limit_mb},
            )
            return True
        return False


async def run_async(registry: HandlerRegistry) -> None:
    """
    Run a worker consuming the transport configured in the settings.

    Args:
        registry: Handlers by message type.
    """
    settings = get_settings()
    setup_logging(settings)
    engine = await init_db()
    if settings.otel_enabled:
        instrument_sqlalchemy(engine)

    # The settings describe a single database, registered under the DSN's name
    configuration = resolve_configuration(settings.messenger_transport_dsn)
    store = QueueStore(
        configuration,
        engine,
        assets_filter=build_assets_filter(settings.schema_ignore_tables),
    )
    worker = Worker({configuration.queue_name: store}, registry)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, worker.request_stop)

    try:
        await worker.start()
    finally:
        await close_db()
