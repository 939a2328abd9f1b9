"""
SQLAlchemy table definitions.
Defines the message table backing every queue.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    Column,
    Dialect,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)
from sqlalchemy.types import TypeDecorator

from tablequeue.constants import DATETIME_FORMAT


class TextualDateTime(TypeDecorator[datetime]):
    """
    Naive UTC timestamp stored as ``YYYY-MM-DDTHH:MM:SS`` text.

    The fixed-width format sorts lexicographically in time order, so range
    predicates and indexes work on the raw column. Values compared against
    the column are formatted the same way.
    """

    impl = String(19)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            return value
        if value.tzinfo is not None:
            value = value.astimezone(UTC).replace(tzinfo=None)
        return value.strftime(DATETIME_FORMAT)

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime | None:
        if value is None or isinstance(value, datetime):
            return value
        return datetime.strptime(value, DATETIME_FORMAT)


def build_messages_table(table_name: str, metadata: MetaData | None = None) -> Table:
    """
    Build the message table for the given name.

    The table name is part of the transport configuration, so the table is
    described with SQLAlchemy Core rather than a declarative model. One
    table holds every logical queue, partitioned by ``queue_name``.

    Key constraints:
    - ``id`` is store-assigned and never reused (AUTOINCREMENT on SQLite)
    - ``delivered_at`` is NULL until a consumer claims the row
    - ``available_at`` hides delayed messages from consumers

    Args:
        table_name: Name of the table to describe.
        metadata: Optional metadata to attach the table to.

    Returns:
        Table: The table definition.
    """
    metadata = metadata if metadata is not None else MetaData()

    return Table(
        table_name,
        metadata,
        # SQLite only aliases the rowid for a plain INTEGER primary key
        Column(
            "id",
            BigInteger().with_variant(Integer, "sqlite"),
            primary_key=True,
            autoincrement=True,
            nullable=False,
        ),
        Column("body", Text, nullable=False),
        Column("headers", Text, nullable=False),
        Column("queue_name", String(190), nullable=False),
        Column("created_at", TextualDateTime, nullable=False),
        Column("available_at", TextualDateTime, nullable=False),
        Column("delivered_at", TextualDateTime, nullable=True),
        Index(f"ix_{table_name}_queue_name", "queue_name"),
        Index(f"ix_{table_name}_available_at", "available_at"),
        Index(f"ix_{table_name}_delivered_at", "delivered_at"),
        sqlite_autoincrement=True,
    )
