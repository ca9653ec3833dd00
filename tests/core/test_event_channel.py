"""
Tests for the EventChannel.

============================================================
TEST COVERAGE
============================================================
1. Subscribe / publish / unsubscribe
2. Wildcard envelopes
3. One-shot subscriptions
4. Handler error isolation
5. Mutation of subscriptions during publish
============================================================
"""

import logging

import pytest

from core.constants import WILDCARD
from core.event_channel import ChannelEvent, EventChannel
from core.exceptions import InvalidTopicError, SubscriptionError


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def channel():
    """Fresh event channel."""
    return EventChannel()


# ============================================================
# SUBSCRIBE / PUBLISH
# ============================================================

class TestPublishSubscribe:
    """Tests for basic delivery."""

    def test_publish_delivers_payload(self, channel):
        """Test subscriber receives the published payload."""
        received = []
        channel.subscribe("tasks:updated", received.append)

        invoked = channel.publish("tasks:updated", {"count": 3})

        assert received == [{"count": 3}]
        assert invoked == 1

    def test_publish_without_payload(self, channel):
        """Test payload defaults to None."""
        received = []
        channel.subscribe("ping", received.append)

        channel.publish("ping")

        assert received == [None]

    def test_subscribers_called_in_registration_order(self, channel):
        """Test exact subscribers run in the order they registered."""
        calls = []
        channel.subscribe("t", lambda p: calls.append("first"))
        channel.subscribe("t", lambda p: calls.append("second"))
        channel.subscribe("t", lambda p: calls.append("third"))

        channel.publish("t")

        assert calls == ["first", "second", "third"]

    def test_publish_without_subscribers_is_noop(self, channel):
        """Test publishing to an unknown topic delivers nothing."""
        assert channel.publish("nobody:listens", 1) == 0

    def test_same_callback_registered_twice_called_twice(self, channel):
        """Test each registration is independent."""
        received = []
        channel.subscribe("t", received.append)
        channel.subscribe("t", received.append)

        channel.publish("t", "x")

        assert received == ["x", "x"]

    def test_other_topics_not_delivered(self, channel):
        """Test subscribers only see their own topic."""
        received = []
        channel.subscribe("a", received.append)

        channel.publish("b", 1)

        assert received == []


# ============================================================
# UNSUBSCRIBE
# ============================================================

class TestUnsubscribe:
    """Tests for removal of registrations."""

    def test_unsubscribe_stops_delivery(self, channel):
        """Test unsubscribe handle removes the registration."""
        received = []
        unsubscribe = channel.subscribe("t", received.append)

        assert unsubscribe() is True
        channel.publish("t", 1)

        assert received == []
        assert channel.listener_count("t") == 0

    def test_unsubscribe_is_idempotent(self, channel):
        """Test second call is a no-op."""
        unsubscribe = channel.subscribe("t", lambda p: None)

        assert unsubscribe() is True
        assert unsubscribe() is False

    def test_unsubscribe_removes_only_one_registration(self, channel):
        """Test duplicate registrations are removed individually."""
        received = []
        first = channel.subscribe("t", received.append)
        channel.subscribe("t", received.append)

        first()
        channel.publish("t", "x")

        assert received == ["x"]

    def test_unsubscribe_topic(self, channel):
        """Test clearing one topic."""
        channel.subscribe("a", lambda p: None)
        channel.subscribe("a", lambda p: None)
        channel.subscribe("b", lambda p: None)

        channel.unsubscribe_topic("a")

        assert channel.listener_count("a") == 0
        assert channel.listener_count("b") == 1
        assert channel.topics() == ["b"]

    def test_unsubscribe_all(self, channel):
        """Test clearing every topic invalidates old handles."""
        unsubscribe = channel.subscribe("a", lambda p: None)
        channel.subscribe(WILDCARD, lambda e: None)

        channel.unsubscribe_topic()

        assert channel.topics() == []
        assert unsubscribe() is False


# ============================================================
# WILDCARD
# ============================================================

class TestWildcard:
    """Tests for "*" subscribers."""

    def test_wildcard_receives_envelope(self, channel):
        """Test wildcard subscribers get a ChannelEvent."""
        received = []
        channel.subscribe(WILDCARD, received.append)

        channel.publish("module:loaded", {"id": "x"})

        assert received == [ChannelEvent(topic="module:loaded", payload={"id": "x"})]

    def test_exact_before_wildcard(self, channel):
        """Test exact subscribers run before wildcard ones."""
        calls = []
        channel.subscribe(WILDCARD, lambda e: calls.append("wildcard"))
        channel.subscribe("t", lambda p: calls.append("exact"))

        channel.publish("t")

        assert calls == ["exact", "wildcard"]

    def test_publish_to_wildcard_rejected(self, channel):
        """Test "*" is subscribe-only."""
        with pytest.raises(InvalidTopicError):
            channel.publish(WILDCARD, 1)

    def test_envelope_to_dict(self):
        """Test envelope serialization."""
        event = ChannelEvent(topic="t", payload=1)
        assert event.to_dict() == {"topic": "t", "payload": 1}


# ============================================================
# ONCE
# ============================================================

class TestSubscribeOnce:
    """Tests for one-shot subscriptions."""

    def test_once_fires_a_single_time(self, channel):
        """Test callback runs for the first publish only."""
        received = []
        channel.subscribe_once("t", received.append)

        channel.publish("t", 1)
        channel.publish("t", 2)

        assert received == [1]
        assert channel.listener_count("t") == 0

    def test_once_removed_before_reentrant_publish(self, channel):
        """Test a once-callback publishing its own topic is not re-invoked."""
        received = []

        def handler(payload):
            received.append(payload)
            if payload == 1:
                channel.publish("t", 2)

        channel.subscribe_once("t", handler)
        channel.publish("t", 1)

        assert received == [1]

    def test_once_can_be_cancelled(self, channel):
        """Test the handle of a once-subscription removes it."""
        received = []
        unsubscribe = channel.subscribe_once("t", received.append)

        unsubscribe()
        channel.publish("t", 1)

        assert received == []


# ============================================================
# ERROR ISOLATION
# ============================================================

class TestErrorIsolation:
    """Tests for failing handlers."""

    def test_failing_handler_does_not_stop_others(self, channel, caplog):
        """Test remaining subscribers still run and the error is logged."""
        received = []

        def broken(payload):
            raise RuntimeError("boom")

        channel.subscribe("t", broken)
        channel.subscribe("t", received.append)

        with caplog.at_level(logging.ERROR, logger="core.event_channel"):
            invoked = channel.publish("t", "ok")

        assert received == ["ok"]
        assert invoked == 2
        assert "boom" in caplog.text
        assert "topic=t" in caplog.text

    def test_failing_wildcard_handler_isolated(self, channel):
        """Test wildcard handler errors do not propagate."""
        channel.subscribe(WILDCARD, lambda e: 1 / 0)

        assert channel.publish("t") == 1


# ============================================================
# MUTATION DURING PUBLISH
# ============================================================

class TestMutationDuringPublish:
    """Tests for subscribe/unsubscribe inside handlers."""

    def test_subscriber_added_during_publish_not_called(self, channel):
        """Test late registrations wait for the next publish."""
        late = []

        def register_late(payload):
            channel.subscribe("t", late.append)

        channel.subscribe("t", register_late)
        channel.publish("t", 1)

        assert late == []

        channel.publish("t", 2)
        assert late == [2]

    def test_subscriber_removed_during_publish_not_called(self, channel):
        """Test a handler removed by an earlier handler is skipped."""
        received = []
        handles = {}

        def remove_second(payload):
            handles["second"]()

        channel.subscribe("t", remove_second)
        handles["second"] = channel.subscribe("t", received.append)

        invoked = channel.publish("t", 1)

        assert received == []
        assert invoked == 1

    def test_self_unsubscribe_during_publish(self, channel):
        """Test a handler may remove itself."""
        received = []
        handles = {}

        def once_by_hand(payload):
            received.append(payload)
            handles["self"]()

        handles["self"] = channel.subscribe("t", once_by_hand)
        channel.publish("t", 1)
        channel.publish("t", 2)

        assert received == [1]


# ============================================================
# VALIDATION
# ============================================================

class TestValidation:
    """Tests for bad arguments."""

    @pytest.mark.parametrize("topic", ["", None, 42])
    def test_invalid_topic_rejected(self, channel, topic):
        """Test non-string or empty topics raise."""
        with pytest.raises(InvalidTopicError):
            channel.subscribe(topic, lambda p: None)

    def test_invalid_publish_topic_rejected(self, channel):
        """Test publish validates the topic."""
        with pytest.raises(InvalidTopicError):
            channel.publish("", 1)

    def test_non_callable_rejected(self, channel):
        """Test callbacks must be callable."""
        with pytest.raises(SubscriptionError):
            channel.subscribe("t", "not callable")

    def test_invalid_topic_is_subscription_error(self):
        """Test exception hierarchy."""
        assert issubclass(InvalidTopicError, SubscriptionError)
