"""
Unit tests for message routing.
"""

import pytest

from tablequeue.errors import ConfigurationError, RoutingError
from tablequeue.routing import SendersLocator
from tablequeue.transport.configuration import resolve_configuration
from tablequeue.transport.store import QueueStore
from tablequeue.types.message import Envelope


class TestSendersLocator:
    """Tests for SendersLocator."""

    @pytest.fixture
    def senders(self) -> dict[str, object]:
        return {"async": object(), "audit": object(), "failed": object()}

    def test_routes_by_type(self, senders):
        locator = SendersLocator({"OrderPlaced": ["async", "audit"]}, senders)

        resolved = list(locator.get_senders("OrderPlaced"))

        assert resolved == [("async", senders["async"]), ("audit", senders["audit"])]

    def test_duplicate_aliases_are_yielded_once(self, senders):
        locator = SendersLocator({"OrderPlaced": ["async", "async"]}, senders)

        assert [alias for alias, _ in locator.get_senders("OrderPlaced")] == ["async"]

    def test_fallback_only_when_unrouted(self, senders):
        locator = SendersLocator(
            {"OrderPlaced": ["async"], "*": ["audit"]},
            senders,
        )

        assert [alias for alias, _ in locator.get_senders("OrderPlaced")] == ["async"]
        assert [alias for alias, _ in locator.get_senders("Other")] == ["audit"]
        assert [alias for alias, _ in locator.get_senders(None)] == ["audit"]

    def test_explicit_transport_names_win(self, senders):
        locator = SendersLocator({"OrderPlaced": ["async"]}, senders)

        resolved = list(locator.get_senders("OrderPlaced", transport_names=["failed"]))

        assert resolved == [("failed", senders["failed"])]

    def test_explicit_unknown_transport_name(self, senders):
        locator = SendersLocator({}, senders)

        with pytest.raises(ConfigurationError):
            list(locator.get_senders("OrderPlaced", transport_names=["missing"]))

    def test_unknown_alias_fails_at_construction(self, senders):
        with pytest.raises(ConfigurationError) as exc_info:
            SendersLocator({"OrderPlaced": ["async", "missing"]}, senders)

        assert "missing" in str(exc_info.value)

    def test_unrouted_type(self, senders):
        locator = SendersLocator({"OrderPlaced": ["async"]}, senders)

        assert list(locator.get_senders("Other")) == []


class TestSendersLocatorSend:
    """Tests for sending through the locator."""

    async def test_send_enqueues_on_each_route(self, engine, clock):
        high = QueueStore(
            resolve_configuration("doctrine://default?queue_name=high"), engine, clock=clock
        )
        audit = QueueStore(
            resolve_configuration("doctrine://default?queue_name=audit"), engine, clock=clock
        )
        locator = SendersLocator(
            {"OrderPlaced": ["high", "audit"]},
            {"high": high, "audit": audit},
        )

        sent = await locator.send(
            Envelope(body='{"order": 1}', headers={"type": "OrderPlaced"})
        )

        assert set(sent) == {"high", "audit"}
        assert (await high.dequeue()).body == '{"order": 1}'
        assert (await audit.dequeue()).headers == {"type": "OrderPlaced"}

    async def test_send_without_route(self, engine):
        locator = SendersLocator({}, {})

        with pytest.raises(RoutingError):
            await locator.send(Envelope(body="{}", headers={"type": "OrderPlaced"}))
