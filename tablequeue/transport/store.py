"""
Table-backed queue store.

Implements point-to-point queue semantics on a relational table:
- enqueue with an optional visibility delay
- exclusive claim with SELECT ... FOR UPDATE inside one transaction
- acknowledge / reject as hard deletes
- redelivery of claims older than the redeliver timeout
"""

import json
import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import Row, delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncEngine

from tablequeue.constants import SPAN_ACK, SPAN_DEQUEUE, SPAN_ENQUEUE, SPAN_REJECT
from tablequeue.db.connection import SchemaAssetsFilter
from tablequeue.db.models import build_messages_table
from tablequeue.errors import ConfigurationError, TransportError
from tablequeue.observability.metrics import get_metrics
from tablequeue.observability.tracing import get_tracer
from tablequeue.transport.configuration import QueueConfiguration, resolve_configuration
from tablequeue.transport.schema import SchemaProvisioner
from tablequeue.transport.visibility import claimable_clause, utcnow
from tablequeue.types.message import QueuedMessage

logger = logging.getLogger(__name__)


class QueueStore:
    """
    Queue engine over a single message table.

    The store keeps no state beyond its configuration and engine. All
    mutual exclusion between competing consumers is delegated to the
    database: a claim selects one row with a write lock and marks it
    delivered before the transaction commits, so a concurrent claimer
    either waits and then skips the row, or never sees it. The claiming
    update re-checks claimability, so on stores without row locks the
    losing consumer gets nothing rather than a duplicate.
    """

    def __init__(
        self,
        configuration: QueueConfiguration,
        engine: AsyncEngine,
        assets_filter: SchemaAssetsFilter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the store.

        Args:
            configuration: Resolved transport configuration.
            engine: The async engine of the configured connection.
            assets_filter: Store-level filter hiding tables from schema tools.
            clock: Source of the current naive UTC time.
        """
        self._configuration = configuration
        self._engine = engine
        self._clock = clock
        self._table = build_messages_table(configuration.table_name)
        self._provisioner = SchemaProvisioner(
            engine,
            self._table,
            auto_setup=configuration.auto_setup,
            assets_filter=assets_filter,
        )
        self._metrics = get_metrics()

    @classmethod
    def from_dsn(
        cls,
        dsn: str,
        engines: Mapping[str, AsyncEngine],
        options: Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> "QueueStore":
        """
        Create a store from a transport DSN.

        Args:
            dsn: Transport DSN; its host names the connection.
            engines: Engines registered by connection name.
            options: Explicit transport options overriding the DSN.
            **kwargs: Passed through to the constructor.

        Returns:
            QueueStore: The configured store.

        Raises:
            ConfigurationError: If the DSN is invalid or names an unknown
                connection.
        """
        configuration = resolve_configuration(dsn, options)
        engine = engines.get(configuration.connection)
        if engine is None:
            raise ConfigurationError(
                f'Unknown connection "{configuration.connection}". '
                f"Available connections are [{', '.join(engines)}]"
            )
        return cls(configuration, engine, **kwargs)

    @property
    def configuration(self) -> QueueConfiguration:
        return self._configuration

    @property
    def queue_name(self) -> str:
        return self._configuration.queue_name

    async def enqueue(
        self,
        body: str | bytes,
        headers: Mapping[str, str] | None = None,
        delay_ms: int = 0,
    ) -> str:
        """
        Add a message to the queue.

        Args:
            body: Encoded message body.
            headers: String headers, including the message type.
            delay_ms: Milliseconds before the message becomes claimable,
                truncated to whole seconds.

        Returns:
            The store-assigned message id.

        Raises:
            ValueError: If the delay is negative or a bytes body is not UTF-8.
            TransportError: If the store fails the insert.
        """
        if delay_ms < 0:
            raise ValueError(f"Delay must not be negative, got {delay_ms}")
        if isinstance(body, bytes):
            body = body.decode("utf-8")

        encoded_headers = json.dumps(dict(headers or {}))
        now = self._clock()
        available_at = now + timedelta(seconds=delay_ms // 1000)

        async def operation() -> Any:
            async with self._engine.begin() as conn:
                result = await conn.execute(
                    insert(self._table).values(
                        body=body,
                        headers=encoded_headers,
                        queue_name=self.queue_name,
                        created_at=now,
                        available_at=available_at,
                    )
                )
                return result.inserted_primary_key[0]

        with get_tracer().start_as_current_span(SPAN_ENQUEUE) as span:
            span.set_attribute("queue_name", self.queue_name)
            message_id = str(await self._provisioner.run(operation))
            span.set_attribute("message_id", message_id)

        self._metrics.record_enqueued(self.queue_name)
        logger.info(
            "Enqueued message",
            extra={
                "message_id": message_id,
                "queue_name": self.queue_name,
                "delay_ms": delay_ms,
            },
        )
        return message_id

    async def dequeue(self) -> QueuedMessage | None:
        """
        Claim the next available message.

        Selects the earliest available claimable row with a write lock and
        sets its ``delivered_at`` in the same transaction. A failure rolls
        the whole transaction back.

        Returns:
            The claimed message, or None if nothing is claimable or a
            competing consumer claimed the selected row first.

        Raises:
            TransportError: If the store fails the claim.
        """

        async def operation() -> QueuedMessage | None:
            now = self._clock()
            async with self._engine.begin() as conn:
                stmt = (
                    select(self._table)
                    .where(self._claimable(now))
                    .order_by(self._table.c.available_at.asc(), self._table.c.id.asc())
                    .limit(1)
                    .with_for_update()
                )
                row = (await conn.execute(stmt)).first()
                if row is None:
                    return None

                message = self._row_to_message(row)
                # Stores without row locks let a competing consumer read the
                # same row; only the update that still sees it claimable wins
                result = await conn.execute(
                    update(self._table)
                    .where(self._table.c.id == row.id, self._claimable(now))
                    .values(delivered_at=now)
                )
                if result.rowcount == 0:
                    logger.debug(
                        "Lost claim race",
                        extra={"message_id": message.id, "queue_name": self.queue_name},
                    )
                    return None
            message.delivered_at = now
            return message

        with get_tracer().start_as_current_span(SPAN_DEQUEUE) as span:
            span.set_attribute("queue_name", self.queue_name)
            message = await self._provisioner.run(operation)
            if message is not None:
                span.set_attribute("message_id", message.id)

        if message is None:
            logger.debug("No claimable message", extra={"queue_name": self.queue_name})
            return None

        self._metrics.record_claimed(self.queue_name)
        logger.info(
            "Claimed message",
            extra={"message_id": message.id, "queue_name": self.queue_name},
        )
        return message

    async def acknowledge(self, message_id: str) -> bool:
        """
        Remove a successfully handled message.

        Args:
            message_id: The message id.

        Returns:
            True if a row was removed, False if it was already gone.

        Raises:
            TransportError: If the store fails the delete.
        """
        with get_tracer().start_as_current_span(SPAN_ACK) as span:
            span.set_attribute("message_id", str(message_id))
            removed = await self._delete(message_id)

        if removed:
            self._metrics.record_acknowledged(self.queue_name)
        logger.info(
            "Acknowledged message",
            extra={"message_id": str(message_id), "removed": removed},
        )
        return removed

    async def reject(self, message_id: str) -> bool:
        """
        Remove a message that could not be handled.

        Rejection deletes the row like acknowledgement; retry and
        dead-lettering belong to the dispatch layer.

        Args:
            message_id: The message id.

        Returns:
            True if a row was removed, False if it was already gone.

        Raises:
            TransportError: If the store fails the delete.
        """
        with get_tracer().start_as_current_span(SPAN_REJECT) as span:
            span.set_attribute("message_id", str(message_id))
            removed = await self._delete(message_id)

        if removed:
            self._metrics.record_rejected(self.queue_name)
        logger.warning(
            "Rejected message",
            extra={"message_id": str(message_id), "removed": removed},
        )
        return removed

    async def find(self, message_id: str) -> QueuedMessage | None:
        """
        Get a message by id regardless of its claim state.

        Args:
            message_id: The message id.

        Returns:
            The message or None if not found.
        """
        row_id = _parse_id(message_id)
        if row_id is None:
            return None

        async def operation() -> Row | None:
            async with self._engine.connect() as conn:
                result = await conn.execute(
                    select(self._table).where(self._table.c.id == row_id)
                )
                return result.first()

        row = await self._provisioner.run(operation)
        return self._row_to_message(row) if row is not None else None

    async def find_all(self, limit: int | None = None) -> list[QueuedMessage]:
        """
        List claimable messages without claiming them.

        Args:
            limit: Maximum number of messages to return.

        Returns:
            Claimable messages, earliest available first.
        """

        async def operation() -> list[Row]:
            stmt = (
                select(self._table)
                .where(self._claimable(self._clock()))
                .order_by(self._table.c.available_at.asc(), self._table.c.id.asc())
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            async with self._engine.connect() as conn:
                return list((await conn.execute(stmt)).all())

        rows = await self._provisioner.run(operation)
        return [self._row_to_message(row) for row in rows]

    async def count(self) -> int:
        """
        Count claimable messages.

        Returns:
            Number of messages a consumer could claim right now.
        """

        async def operation() -> int:
            stmt = (
                select(func.count())
                .select_from(self._table)
                .where(self._claimable(self._clock()))
            )
            async with self._engine.connect() as conn:
                return (await conn.execute(stmt)).scalar() or 0

        depth = await self._provisioner.run(operation)
        self._metrics.update_queue_depth(self.queue_name, depth)
        return depth

    async def ensure_schema(self) -> None:
        """Create the queue table if it does not exist yet."""
        await self._provisioner.ensure_schema()

    async def _delete(self, message_id: str) -> bool:
        row_id = _parse_id(message_id)
        if row_id is None:
            return False

        async def operation() -> int:
            async with self._engine.begin() as conn:
                result = await conn.execute(
                    delete(self._table).where(self._table.c.id == row_id)
                )
                return result.rowcount

        return await self._provisioner.run(operation) > 0

    def _claimable(self, now: datetime):
        return claimable_clause(
            self._table,
            self.queue_name,
            now,
            self._configuration.redeliver_timeout,
        )

    def _row_to_message(self, row: Row) -> QueuedMessage:
        """Convert a database row to a QueuedMessage."""
        try:
            headers = json.loads(row.headers)
        except (TypeError, ValueError) as e:
            raise TransportError(
                f"Message {row.id} has malformed headers: {e}"
            ) from e
        if not isinstance(headers, dict):
            raise TransportError(f"Message {row.id} headers are not a mapping")

        return QueuedMessage(
            id=str(row.id),
            body=row.body,
            headers=headers,
            queue_name=row.queue_name,
            created_at=row.created_at,
            available_at=row.available_at,
            delivered_at=row.delivered_at,
        )

    def __repr__(self) -> str:
        return (
            f"QueueStore(connection={self._configuration.connection}, "
            f"table={self._table.name}, queue={self.queue_name})"
        )


def _parse_id(message_id: str | int) -> int | None:
    # Ids are integers in the store; anything else cannot match a row
    try:
        return int(message_id)
    except (TypeError, ValueError):
        return None
