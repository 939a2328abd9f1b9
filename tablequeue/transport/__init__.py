"""
Transport module.
Contains the table-backed queue store and its collaborators.
"""

from tablequeue.transport.configuration import QueueConfiguration, resolve_configuration
from tablequeue.transport.schema import SchemaProvisioner, is_missing_table
from tablequeue.transport.store import QueueStore
from tablequeue.transport.visibility import (
    claimable_clause,
    format_datetime,
    is_claimable,
    redeliver_limit,
    utcnow,
)

__all__ = [
    "QueueConfiguration",
    "resolve_configuration",
    "SchemaProvisioner",
    "is_missing_table",
    "QueueStore",
    "claimable_clause",
    "format_datetime",
    "is_claimable",
    "redeliver_limit",
    "utcnow",
]
