"""Tests for the periodic Announcer."""

from __future__ import annotations

import asyncio
import json

import pytest

from udp_discovery.announcer import Announcer
from udp_discovery.errors import StateConflictError
from udp_discovery.liveness import LivenessMonitor
from udp_discovery.registry import Registry


@pytest.fixture
def live_registry(notifier, clock):
    return Registry(notifier, clock=clock, default_interval=3000)


@pytest.fixture
def announcer_for(live_registry, transport):
    announcer = Announcer(live_registry, transport, "224.0.0.234", 44201)
    live_registry.attach_announcer(announcer)
    return announcer


async def _stop_all(registry):
    await asyncio.gather(*registry.cancel_all(), return_exceptions=True)


class TestAnnounceOnce:
    @pytest.mark.asyncio
    async def test_sends_stripped_record(self, live_registry, announcer_for, transport):
        live_registry.register("svc", {"port": 80}, 500, True, is_local=True)
        assert announcer_for.announce_once("svc") is True
        payload, port, address = transport.sent[0]
        assert (port, address) == (44201, "224.0.0.234")
        assert json.loads(payload) == {
            "name": "svc",
            "data": {"port": 80},
            "interval": 500,
            "available": True,
        }
        await _stop_all(live_registry)

    @pytest.mark.asyncio
    async def test_touches_record(self, live_registry, announcer_for, clock):
        live_registry.register("svc", {}, 500, is_local=True)
        clock.advance_ms(900)
        announcer_for.announce_once("svc")
        assert live_registry.get_record("svc").last_seen_at == clock.now
        await _stop_all(live_registry)

    def test_unknown_service(self, announcer_for, transport):
        assert announcer_for.announce_once("nope") is False
        assert transport.sent == []

    def test_encode_failure(self, live_registry, announcer_for, transport):
        live_registry.register("svc", {"bad": object()}, 500)
        assert announcer_for.announce_once("svc") is False
        assert transport.sent == []

    def test_transport_failure_still_refreshes(
        self, live_registry, announcer_for, transport, clock
    ):
        live_registry.register("svc", {}, 500)
        clock.advance_ms(100)
        transport.fail = True
        assert announcer_for.announce_once("svc") is False
        assert live_registry.get_record("svc").last_seen_at == clock.now


class TestPeriodic:
    def test_start_without_loop(self, live_registry, transport):
        announcer = Announcer(live_registry, transport, "224.0.0.234", 44201)
        with pytest.raises(StateConflictError):
            announcer.start("svc", 100)

    @pytest.mark.asyncio
    async def test_repeats_on_interval(self, live_registry, announcer_for, transport):
        live_registry.register("svc", {}, 20, is_local=True)
        assert transport.sent == []  # first send after one interval
        await asyncio.sleep(0.09)
        assert len(transport.sent) >= 2
        await _stop_all(live_registry)

    @pytest.mark.asyncio
    async def test_reads_current_state(self, live_registry, announcer_for, transport):
        live_registry.register("svc", {"v": 1}, 20, is_local=True)
        live_registry.update_local("svc", {"v": 2}, 20)
        await asyncio.sleep(0.05)
        assert transport.sent_messages()[-1]["data"] == {"v": 2}
        await _stop_all(live_registry)

    @pytest.mark.asyncio
    async def test_pause_stops_sends(self, live_registry, announcer_for, transport):
        live_registry.register("svc", {}, 10, is_local=True)
        await asyncio.sleep(0.05)
        assert live_registry.pause("svc")
        await asyncio.sleep(0)
        count = len(transport.sent)
        assert count >= 1
        await asyncio.sleep(0.05)
        assert len(transport.sent) == count

    @pytest.mark.asyncio
    async def test_resume_restarts_sends(self, live_registry, announcer_for, transport):
        live_registry.register("svc", {}, 1000, is_local=True)
        live_registry.pause("svc")
        assert live_registry.resume("svc", 10)
        await asyncio.sleep(0.05)
        assert len(transport.sent) >= 2
        await _stop_all(live_registry)

    @pytest.mark.asyncio
    async def test_send_failure_keeps_task(self, live_registry, announcer_for, transport):
        live_registry.register("svc", {}, 10, is_local=True)
        transport.fail = True
        await asyncio.sleep(0.04)
        assert transport.sent == []
        transport.fail = False
        await asyncio.sleep(0.04)
        assert len(transport.sent) >= 1
        assert live_registry.get_record("svc").announcing
        await _stop_all(live_registry)

    @pytest.mark.asyncio
    async def test_survives_outage_longer_than_timeout(
        self, live_registry, announcer_for, transport, clock
    ):
        live_registry.register("svc", {}, 20, is_local=True)
        transport.fail = True
        clock.advance_ms(200)
        await asyncio.sleep(0.05)

        assert LivenessMonitor(live_registry).check() == []
        assert "svc" in live_registry

        transport.fail = False
        await asyncio.sleep(0.05)
        assert len(transport.sent) >= 1
        assert live_registry.get_record("svc").announcing
        await _stop_all(live_registry)

    @pytest.mark.asyncio
    async def test_unencodable_data_does_not_time_out(self, live_registry, announcer_for, clock):
        live_registry.register("svc", {"bad": object()}, 20, is_local=True)
        clock.advance_ms(200)
        await asyncio.sleep(0.05)
        assert LivenessMonitor(live_registry).check() == []
        assert "svc" in live_registry
        await _stop_all(live_registry)

    @pytest.mark.asyncio
    async def test_task_ends_when_record_removed(self, live_registry, announcer_for):
        live_registry.register("svc", {}, 10, is_local=True)
        task = live_registry._services["svc"].announce_task
        # Simulate removal without cancelling the task
        with live_registry._lock:
            live_registry._services.pop("svc")
        await asyncio.sleep(0.05)
        assert task.done()
        assert not task.cancelled()

    def test_register_local_without_loop(self, live_registry, announcer_for):
        assert live_registry.register("svc", {}, 100, is_local=True) is False
        assert "svc" not in live_registry
