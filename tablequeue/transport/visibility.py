"""
Message visibility rules.

A row can be claimed by a consumer when it belongs to the target queue, its
``available_at`` has passed, and it is either unclaimed or its claim is
older than the redeliver timeout. The timeout bounds how long a crashed
consumer can hide a message; it must exceed the longest expected handling
time or live consumers will see duplicates.
"""

from datetime import UTC, datetime, timedelta

from sqlalchemy import ColumnElement, Table, and_, or_

from tablequeue.constants import DATETIME_FORMAT
from tablequeue.types.message import QueuedMessage


def utcnow() -> datetime:
    """Get the current naive UTC time truncated to whole seconds."""
    return datetime.now(UTC).replace(tzinfo=None, microsecond=0)


def format_datetime(value: datetime) -> str:
    """Render a timestamp in the persisted ``YYYY-MM-DDTHH:MM:SS`` format."""
    return value.strftime(DATETIME_FORMAT)


def redeliver_limit(now: datetime, redeliver_timeout: int) -> datetime:
    """
    Get the claim time before which a delivered message is reclaimable.

    Args:
        now: The current time.
        redeliver_timeout: Visibility window in seconds.

    Returns:
        datetime: Claims strictly older than this have expired.
    """
    return now - timedelta(seconds=redeliver_timeout)


def is_claimable(
    message: QueuedMessage,
    now: datetime,
    redeliver_timeout: int,
    queue_name: str | None = None,
) -> bool:
    """
    Check whether a message may be claimed by a consumer.

    Args:
        message: The stored message.
        now: The current time.
        redeliver_timeout: Visibility window in seconds.
        queue_name: Optional queue the consumer polls; any queue if None.

    Returns:
        True if the message is eligible for claiming.
    """
    if queue_name is not None and message.queue_name != queue_name:
        return False
    if message.available_at > now:
        return False
    if message.delivered_at is None:
        return True
    return message.delivered_at < redeliver_limit(now, redeliver_timeout)


def claimable_clause(
    table: Table,
    queue_name: str,
    now: datetime,
    redeliver_timeout: int,
) -> ColumnElement[bool]:
    """
    Build the SQL form of :func:`is_claimable`.

    Args:
        table: The message table.
        queue_name: Queue the consumer polls.
        now: The current time.
        redeliver_timeout: Visibility window in seconds.

    Returns:
        A boolean clause usable in WHERE.
    """
    return and_(
        or_(
            table.c.delivered_at.is_(None),
            table.c.delivered_at < redeliver_limit(now, redeliver_timeout),
        ),
        table.c.available_at <= now,
        table.c.queue_name == queue_name,
    )
