"""
Database module.
Contains database connection management and table definitions.
"""

from tablequeue.db.connection import (
    SchemaAssetsFilter,
    build_assets_filter,
    close_db,
    get_engine,
    get_test_engine,
    init_db,
)
from tablequeue.db.models import TextualDateTime, build_messages_table

__all__ = [
    "get_engine",
    "get_test_engine",
    "init_db",
    "close_db",
    "SchemaAssetsFilter",
    "build_assets_filter",
    "build_messages_table",
    "TextualDateTime",
]
