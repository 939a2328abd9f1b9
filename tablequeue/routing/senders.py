"""
Message routing to transports.

Routing is an explicit table from message type to transport aliases,
declared at configuration time. Message types are the values of the
``type`` header; the ``*`` entry is a fallback for types that have no
route of their own.
"""

import logging
from collections.abc import Iterator, Mapping, Sequence

from tablequeue.constants import ROUTING_FALLBACK
from tablequeue.errors import ConfigurationError, RoutingError
from tablequeue.transport.store import QueueStore
from tablequeue.types.message import Envelope

logger = logging.getLogger(__name__)


class SendersLocator:
    """
    Maps a message type to the stores it must be sent to.

    Every alias referenced by the routing table is resolved when the
    locator is built, so a misconfigured route fails at startup rather than
    on the first message.
    """

    def __init__(
        self,
        senders_map: Mapping[str, Sequence[str]],
        senders: Mapping[str, QueueStore],
    ):
        """
        Initialize the locator.

        Args:
            senders_map: Message type to transport aliases.
            senders: Stores registered by alias.

        Raises:
            ConfigurationError: If a route names an unregistered alias.
        """
        unknown = sorted(
            {alias for aliases in senders_map.values() for alias in aliases}
            - set(senders)
        )
        if unknown:
            raise ConfigurationError(
                f"Invalid senders configuration: [{', '.join(unknown)}] "
                f"not in the registered senders [{', '.join(senders)}]"
            )

        self._senders_map = {
            message_type: tuple(aliases)
            for message_type, aliases in senders_map.items()
        }
        self._senders = dict(senders)

    def get_senders(
        self,
        message_type: str | None,
        transport_names: Sequence[str] | None = None,
    ) -> Iterator[tuple[str, QueueStore]]:
        """
        Resolve the stores a message must be sent to.

        Args:
            message_type: The message type header value.
            transport_names: Explicit aliases overriding the routing table.

        Yields:
            (alias, store) pairs, without duplicates.

        Raises:
            ConfigurationError: If an explicit alias is not registered.
        """
        if transport_names:
            for alias in transport_names:
                yield alias, self._get_sender(alias)
            return

        aliases = self._senders_map.get(message_type, ()) if message_type else ()
        # The fallback only applies when the type has no route of its own
        if not aliases:
            aliases = self._senders_map.get(ROUTING_FALLBACK, ())

        seen: list[str] = []
        for alias in aliases:
            if alias not in seen:
                seen.append(alias)

        for alias in seen:
            yield alias, self._senders[alias]

    async def send(
        self,
        envelope: Envelope,
        transport_names: Sequence[str] | None = None,
    ) -> dict[str, str]:
        """
        Enqueue an envelope on every store routed for its type.

        Args:
            envelope: The encoded message.
            transport_names: Explicit aliases overriding the routing table.

        Returns:
            Message id per transport alias.

        Raises:
            RoutingError: If no store is routed for the message type.
        """
        sent: dict[str, str] = {}
        for alias, store in self.get_senders(envelope.message_type, transport_names):
            sent[alias] = await store.enqueue(
                envelope.body,
                envelope.headers,
                envelope.delay_ms,
            )

        if not sent:
            raise RoutingError(envelope.message_type or "<untyped>")

        logger.debug(
            "Sent message",
            extra={"message_type": envelope.message_type, "transports": list(sent)},
        )
        return sent

    def _get_sender(self, alias: str) -> QueueStore:
        try:
            return self._senders[alias]
        except KeyError:
            raise ConfigurationError(
                f'Invalid senders configuration: sender "{alias}" is not registered.'
            ) from None
