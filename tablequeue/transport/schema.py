"""
Queue table provisioning.

The provisioner creates the message table on demand and wraps store
operations so that a query failing on a missing table is retried exactly
once after the table has been created.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy import Connection, Table, inspect
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from tablequeue.constants import SPAN_ENSURE_SCHEMA
from tablequeue.db.connection import SchemaAssetsFilter
from tablequeue.errors import SchemaMissingError, TransportError
from tablequeue.observability.metrics import get_metrics
from tablequeue.observability.tracing import get_tracer

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Any store failure, including refused connections and pool checkout timeouts
CONNECTION_ERRORS = (OSError, SQLAlchemyError)

# SQLSTATE codes for an undefined table (PostgreSQL, ODBC/MySQL)
MISSING_TABLE_SQLSTATES = frozenset({"42P01", "42S02"})
MISSING_TABLE_MARKERS = ("no such table", "undefinedtable", "doesn't exist")


def is_missing_table(exc: BaseException) -> bool:
    """
    Check whether a driver error signals a missing table.

    Args:
        exc: The exception raised by SQLAlchemy or the driver.

    Returns:
        True if the query failed because the table does not exist.
    """
    orig = getattr(exc, "orig", None) or exc
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code in MISSING_TABLE_SQLSTATES:
        return True

    message = f"{type(orig).__name__} {orig}".lower()
    if any(marker in message for marker in MISSING_TABLE_MARKERS):
        return True
    return "relation" in message and "does not exist" in message


class SchemaProvisioner:
    """
    Idempotent creator of the queue table.

    Implements:
    - ensure_schema: create the table and its indexes if absent
    - run: execute an operation with a single provision-and-retry step
    """

    def __init__(
        self,
        engine: AsyncEngine,
        table: Table,
        auto_setup: bool = True,
        assets_filter: SchemaAssetsFilter | None = None,
    ):
        """
        Initialize the provisioner.

        Args:
            engine: The async engine owning the table.
            table: The message table definition.
            auto_setup: Whether missing tables are created on demand.
            assets_filter: Store-level filter hiding tables from schema tools.
        """
        self._engine = engine
        self._table = table
        self._auto_setup = auto_setup
        self._assets_filter = assets_filter or SchemaAssetsFilter()

    @property
    def table(self) -> Table:
        return self._table

    @property
    def auto_setup(self) -> bool:
        return self._auto_setup

    async def ensure_schema(self) -> None:
        """
        Create the queue table if it does not exist yet.

        The assets filter is disabled while the schema is inspected so the
        table is visible even if the application hides it from its own
        migrations. The filter is restored on every path.

        Raises:
            TransportError: If the store fails while creating the table.
        """
        with get_tracer().start_as_current_span(SPAN_ENSURE_SCHEMA) as span:
            span.set_attribute("table_name", self._table.name)
            with self._assets_filter.disabled():
                try:
                    async with self._engine.begin() as conn:
                        created = await conn.run_sync(self._synchronize)
                except CONNECTION_ERRORS as e:
                    raise TransportError(
                        f"Could not set up queue table {self._table.name}: {e}"
                    ) from e

        if created:
            get_metrics().record_schema_setup(self._table.name)
            logger.info(
                "Created queue table",
                extra={"table_name": self._table.name},
            )

    def _synchronize(self, conn: Connection) -> bool:
        existing = [
            name
            for name in inspect(conn).get_table_names()
            if self._assets_filter.accepts(name)
        ]
        if self._table.name in existing:
            return False

        self._table.create(conn, checkfirst=True)
        return True

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run a store operation, provisioning the table at most once.

        The operation must open its own transaction so that it can be
        re-issued after a rollback.

        Args:
            operation: Zero-argument coroutine function issuing the queries.

        Returns:
            The operation's result.

        Raises:
            SchemaMissingError: If the table is missing and auto setup is
                disabled, or it is still missing after provisioning.
            TransportError: For any other store failure.
        """
        try:
            return await operation()
        except DBAPIError as e:
            if not is_missing_table(e):
                raise TransportError(str(e)) from e
            if not self._auto_setup:
                raise SchemaMissingError(self._table.name) from e
            logger.warning(
                "Queue table missing, provisioning and retrying",
                extra={"table_name": self._table.name},
            )
        except CONNECTION_ERRORS as e:
            raise TransportError(str(e)) from e

        await self.ensure_schema()

        try:
            return await operation()
        except DBAPIError as e:
            if is_missing_table(e):
                raise SchemaMissingError(self._table.name) from e
            raise TransportError(str(e)) from e
        except CONNECTION_ERRORS as e:
            raise TransportError(str(e)) from e
