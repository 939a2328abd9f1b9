"""
Transport configuration resolution.

A transport is described by a DSN such as::

    doctrine://default?table_name=messages&queue_name=high&redeliver_timeout=600

The DSN host names the database connection; the query string carries
transport options. Explicit options win over DSN options, which win over
the built-in defaults.
"""

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from tablequeue.constants import ALLOWED_OPTIONS, DEFAULT_OPTIONS
from tablequeue.errors import ConfigurationError

logger = logging.getLogger(__name__)


class QueueConfiguration(BaseModel):
    """Validated configuration of one queue transport."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    connection: str = Field(min_length=1)
    table_name: str = Field(default=DEFAULT_OPTIONS["table_name"], min_length=1)
    queue_name: str = Field(default=DEFAULT_OPTIONS["queue_name"], min_length=1)
    redeliver_timeout: int = Field(default=DEFAULT_OPTIONS["redeliver_timeout"], ge=0)
    auto_setup: bool = DEFAULT_OPTIONS["auto_setup"]


def resolve_configuration(
    dsn: str,
    options: Mapping[str, Any] | None = None,
) -> QueueConfiguration:
    """
    Merge DSN options with explicit options into a configuration.

    Args:
        dsn: Transport DSN, ``scheme://connection?option=value``.
        options: Explicit options, taking precedence over the DSN.

    Returns:
        QueueConfiguration: The validated configuration.

    Raises:
        ConfigurationError: If the DSN is malformed, an option is unknown
            or a value does not validate.
    """
    options = dict(options or {})

    try:
        url = make_url(dsn)
    except (ArgumentError, ValueError, TypeError, AttributeError) as e:
        raise ConfigurationError(f'The given transport DSN "{dsn}" is invalid.') from e

    if not url.host:
        raise ConfigurationError(
            f'The given transport DSN "{dsn}" does not name a connection.'
        )

    # Repeated query keys keep the last value
    query = {
        key: value[-1] if isinstance(value, tuple) else value
        for key, value in url.query.items()
    }

    _check_extra_keys(options, "Unknown option found")
    _check_extra_keys(query, "Unknown option found in DSN")

    values: dict[str, Any] = {"connection": url.host}
    for key in ALLOWED_OPTIONS:
        if options.get(key) is not None:
            values[key] = options[key]
        elif key in query:
            values[key] = query[key]

    try:
        configuration = QueueConfiguration(**values)
    except ValidationError as e:
        raise ConfigurationError(
            f'Invalid transport configuration for DSN "{dsn}": {e}'
        ) from e

    logger.debug(
        "Resolved transport configuration",
        extra=configuration.model_dump(),
    )
    return configuration


def _check_extra_keys(source: Mapping[str, Any], prefix: str) -> None:
    extra_keys = [key for key in source if key not in ALLOWED_OPTIONS]
    if extra_keys:
        raise ConfigurationError(
            f"{prefix}: [{', '.join(extra_keys)}]. "
            f"Allowed options are [{', '.join(ALLOWED_OPTIONS)}]"
        )
