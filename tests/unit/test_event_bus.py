"""
Unit tests for EventBus.

Tests subscription, priority ordering, wildcard routing and listener
failure isolation.
"""

import asyncio

import pytest

from src.core.event.bus import EventBus
from src.core.event.types import ListenerPriority


@pytest.fixture
def bus():
    return EventBus(critical_timeout_seconds=0.5, high_timeout_seconds=0.5)


@pytest.mark.unit
class TestSubscription:

    def test_callback_must_take_one_argument(self, bus):
        with pytest.raises(ValueError):
            bus.subscribe("guild.created", lambda a, b: None)

    def test_duplicate_listener_is_ignored(self, bus):
        def listener(payload):
            return None

        bus.subscribe("guild.created", listener)
        bus.subscribe("guild.created", listener)

        assert bus.get_listener_count("guild.created") == 1

    def test_unsubscribe(self, bus):
        listener_id = bus.subscribe("guild.created", lambda payload: None, identifier="audit")

        assert bus.unsubscribe("guild.created", listener_id)
        assert bus.get_listener_count() == 0


@pytest.mark.unit
class TestPublish:

    async def test_priority_order(self, bus):
        calls = []
        bus.subscribe("party.created", lambda p: calls.append("normal"), identifier="n")
        bus.subscribe(
            "party.created", lambda p: calls.append("critical"), priority=ListenerPriority.CRITICAL, identifier="c"
        )
        bus.subscribe("party.created", lambda p: calls.append("high"), priority=ListenerPriority.HIGH, identifier="h")

        await bus.publish("party.created", {"party_id": 1})

        assert calls == ["critical", "high", "normal"]

    async def test_wildcard_matches(self, bus):
        seen = []
        bus.subscribe("guild.*", lambda p: seen.append(p["guild_id"]))

        await bus.publish("guild.member_joined", {"guild_id": 3})
        await bus.publish("party.member_joined", {"party_id": 4})

        assert seen == [3]

    async def test_failing_listener_does_not_break_others(self, bus):
        def broken(payload):
            raise RuntimeError("listener bug")

        bus.subscribe("notification.created", broken, identifier="broken")
        bus.subscribe("notification.created", lambda p: "ok", identifier="ok")

        results = await bus.publish("notification.created", {"notification_id": 1})

        assert results == [None, "ok"]

    async def test_once_listener_runs_once(self, bus):
        calls = []
        bus.subscribe("guild.created", lambda p: calls.append(p), once=True)

        await bus.publish("guild.created", {})
        await bus.publish("guild.created", {})

        assert len(calls) == 1
        assert bus.get_publish_count("guild.created") == 2

    async def test_slow_high_listener_times_out(self, bus):
        async def slow(payload):
            await asyncio.sleep(5)

        bus.subscribe("guild.created", slow, priority=ListenerPriority.HIGH)

        assert await bus.publish("guild.created", {}) == [None]

    async def test_low_listeners_run_in_background(self, bus):
        seen = []

        async def record(payload):
            seen.append(payload["guild_id"])

        bus.subscribe("guild.created", record, priority=ListenerPriority.LOW)

        results = await bus.publish("guild.created", {"guild_id": 9})
        await bus.drain()

        assert results == []
        assert seen == [9]

    async def test_timeouts_come_from_config(self, mock_config_manager):
        mock_config_manager.values["core.event.listener_timeout.high_seconds"] = 0.25

        bus = EventBus(mock_config_manager)

        assert bus._high_timeout == 0.25
        assert bus._critical_timeout == 5.0
