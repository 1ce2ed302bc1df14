import pytest

from strata.core.event_bus import EventBus


def test_publish_delivers_payload_in_subscription_order():
    bus = EventBus()
    calls = []
    bus.subscribe("load", lambda p: calls.append(("a", p)))
    bus.subscribe("load", lambda p: calls.append(("b", p)))

    bus.publish("load", {"url": "x"})

    assert calls == [("a", {"url": "x"}), ("b", {"url": "x"})]


def test_publish_without_subscribers_is_noop():
    bus = EventBus()
    bus.publish("nobody-listens", 1)
    assert not bus.has_subscribers("nobody-listens")


def test_unsubscribe_removes_only_that_handler():
    bus = EventBus()
    calls = []

    def first(_):
        calls.append("first")

    def second(_):
        calls.append("second")

    unsubscribe = bus.subscribe("seek", first)
    bus.subscribe("seek", second)
    unsubscribe()
    bus.publish("seek")

    assert calls == ["second"]


def test_handler_may_unsubscribe_during_dispatch():
    bus = EventBus()
    calls = []
    unsubscribe = None

    def once(_):
        calls.append("once")
        unsubscribe()

    unsubscribe = bus.subscribe("ready", once)
    bus.subscribe("ready", lambda _: calls.append("always"))

    bus.publish("ready")
    bus.publish("ready")

    assert calls == ["once", "always", "always"]


def test_handler_error_propagates_and_skips_rest():
    bus = EventBus()
    calls = []

    def broken(_):
        raise RuntimeError("boom")

    bus.subscribe("error", broken)
    bus.subscribe("error", lambda _: calls.append("late"))

    with pytest.raises(RuntimeError):
        bus.publish("error")
    assert calls == []


def test_teardown_drops_everything():
    bus = EventBus()
    bus.subscribe("play", lambda _: None)
    bus.teardown()
    assert not bus.has_subscribers("play")
