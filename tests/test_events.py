"""
Tests for the Event System (Observer Pattern)

Tests the event dispatcher and payload serialization.
"""

import pytest
from datetime import datetime
from unittest.mock import Mock

from dividend_ledger.events import DomainEvent, EventPayload, EventDispatcher


def minted_event(account="alice", amount="100"):
    return EventPayload(
        event_type=DomainEvent.MINTED,
        entity_type="account",
        entity_id=account,
        data={"amount": amount}
    )


class TestEventPayload:
    """Test EventPayload creation and serialization"""

    def test_event_payload_creation(self):
        """Test creating event payloads"""
        event = minted_event()

        assert event.event_type == DomainEvent.MINTED
        assert event.entity_id == "alice"
        assert event.data["amount"] == "100"
        assert isinstance(event.timestamp, datetime)
        assert event.timestamp.tzinfo is not None
        assert len(event.event_id) > 0

    def test_event_payload_serialization(self):
        """Test event payload to/from dict"""
        original = EventPayload(
            event_type=DomainEvent.DIVIDEND_RECORDED,
            entity_type="dividend",
            entity_id="distribution",
            data={"amount": "40", "holder_count": "2"}
        )

        event_dict = original.to_dict()
        assert event_dict['event_type'] == "dividend.recorded"

        restored = EventPayload.from_dict(event_dict)
        assert restored.event_type == original.event_type
        assert restored.data == original.data
        assert restored.timestamp == original.timestamp
        assert restored.event_id == original.event_id


class TestEventDispatcher:
    """Test the event dispatcher"""

    def test_subscribe_and_publish(self):
        """Handlers only receive the event types they subscribed to"""
        dispatcher = EventDispatcher()
        minted = Mock()
        burned = Mock()
        dispatcher.subscribe(DomainEvent.MINTED, minted)
        dispatcher.subscribe(DomainEvent.BURNED, burned)

        event = minted_event()
        dispatcher.publish(event)

        minted.assert_called_once_with(event)
        burned.assert_not_called()

    def test_global_handlers_receive_everything(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe_all(handler)

        dispatcher.publish(minted_event())
        dispatcher.publish(EventPayload(DomainEvent.APPROVAL, "account", "alice", {}))

        assert handler.call_count == 2

    def test_unsubscribe(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(DomainEvent.MINTED, handler)
        dispatcher.unsubscribe(DomainEvent.MINTED, handler)

        dispatcher.publish(minted_event())

        handler.assert_not_called()
        # Unsubscribing twice only logs a warning
        dispatcher.unsubscribe(DomainEvent.MINTED, handler)

    def test_handler_errors_do_not_propagate(self):
        """A failing handler does not stop the others"""
        dispatcher = EventDispatcher()
        failing = Mock(side_effect=RuntimeError("boom"))
        working = Mock()
        dispatcher.subscribe(DomainEvent.MINTED, failing)
        dispatcher.subscribe(DomainEvent.MINTED, working)

        dispatcher.publish(minted_event())

        failing.assert_called_once()
        working.assert_called_once()

    def test_handler_may_unsubscribe_during_publish(self):
        dispatcher = EventDispatcher()
        calls = []

        def once(event):
            calls.append(event)
            dispatcher.unsubscribe(DomainEvent.MINTED, once)

        dispatcher.subscribe(DomainEvent.MINTED, once)
        dispatcher.publish(minted_event())
        dispatcher.publish(minted_event())

        assert len(calls) == 1

    def test_handler_count_and_clear(self):
        dispatcher = EventDispatcher()
        dispatcher.subscribe(DomainEvent.MINTED, Mock())
        dispatcher.subscribe(DomainEvent.BURNED, Mock())
        dispatcher.subscribe_all(Mock())

        assert dispatcher.get_handler_count(DomainEvent.MINTED) == 1
        assert dispatcher.get_handler_count() == 3

        dispatcher.clear()
        assert dispatcher.get_handler_count() == 0


@pytest.mark.parametrize("event_type", list(DomainEvent))
def test_every_event_type_round_trips(event_type):
    event = EventPayload(event_type, "account", "alice", {})
    assert EventPayload.from_dict(event.to_dict()).event_type == event_type
