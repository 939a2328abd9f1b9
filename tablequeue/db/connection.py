"""
Database connection management.
Handles the async SQLAlchemy engine and the schema assets filter.
"""

import logging
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from tablequeue.config import get_settings

logger = logging.getLogger(__name__)

# Global engine instance
_engine: AsyncEngine | None = None


class SchemaAssetsFilter:
    """
    Store-level filter hiding tables from schema tooling.

    Applications often keep migration tools away from transport tables by
    filtering asset names. The queue provisioner must see its own table, so
    it switches the filter off for the duration of a synchronisation.
    """

    def __init__(self, callback: Callable[[str], bool] | None = None):
        """
        Initialize the filter.

        Args:
            callback: Predicate returning True for visible table names.
                None makes every table visible.
        """
        self.callback = callback

    def accepts(self, name: str) -> bool:
        """Check whether a table name is visible through the filter."""
        if self.callback is None:
            return True
        return self.callback(name)

    @contextmanager
    def disabled(self) -> Iterator[None]:
        """
        Temporarily disable the filter.

        The previous callback is restored on every exit path.
        """
        saved = self.callback
        self.callback = None
        try:
            yield
        finally:
            self.callback = saved


def build_assets_filter(ignored_tables: Iterable[str]) -> SchemaAssetsFilter:
    """
    Build a filter hiding the given table names.

    Args:
        ignored_tables: Table names schema tooling should not see.

    Returns:
        SchemaAssetsFilter: The filter instance.
    """
    ignored = frozenset(ignored_tables)
    if not ignored:
        return SchemaAssetsFilter()
    return SchemaAssetsFilter(lambda name: name not in ignored)


def get_engine() -> AsyncEngine:
    """
    Get or create the async database engine.

    Returns:
        AsyncEngine: The SQLAlchemy async engine instance.
    """
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            echo=settings.log_level == "DEBUG",
            pool_pre_ping=True,
        )
    return _engine


def get_test_engine(database_url: str = "sqlite+aiosqlite:///:memory:") -> AsyncEngine:
    """
    Create a test database engine.

    In-memory SQLite databases live as long as their connection, so a
    single shared connection is used.

    Args:
        database_url: The database URL for testing.

    Returns:
        AsyncEngine: The test SQLAlchemy async engine instance.
    """
    return create_async_engine(
        database_url,
        poolclass=StaticPool,
        echo=False,
    )


async def init_db() -> AsyncEngine:
    """
    Initialize the database engine.
    Should be called on application startup.

    Returns:
        AsyncEngine: The initialized engine.
    """
    engine = get_engine()
    logger.info("Database connection initialized")
    return engine


async def close_db() -> None:
    """
    Close the database connection.
    Should be called on application shutdown.
    """
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        logger.info("Database connection closed")
