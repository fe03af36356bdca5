"""
tests/test_realtime_service.py — Connection Registry & Fan-out Tests
======================================================================
Uses in-memory fake sockets; no server is started.
"""

from __future__ import annotations

import asyncio
import json

import pytest
from starlette.websockets import WebSocketState

from huddle.services.realtime_service import ConnectionRegistry, RealtimeHub


def run_async(coro):
    """Run an async coroutine synchronously for testing."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


class FakeSocket:
    def __init__(self, fail: bool = False) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[dict] = []
        self.fail = fail

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise RuntimeError("socket gone")
        self.sent.append(json.loads(data))


class TestConnectionRegistry:
    def test_register_and_unregister(self):
        registry = ConnectionRegistry()
        a, b = FakeSocket(), FakeSocket()
        registry.register(1, a)
        registry.register(1, b)
        registry.register(2, FakeSocket())

        assert registry.user_count == 2
        assert registry.connection_count == 3

        registry.unregister(1, a)
        assert registry.connections_for(1) == [b]
        registry.unregister(1, b)
        assert not registry.has_user(1)

    def test_unregister_unknown_is_noop(self):
        registry = ConnectionRegistry()
        registry.unregister(5, FakeSocket())
        assert registry.user_count == 0


class TestRealtimeHub:
    def test_emit_reaches_every_connection_of_user(self):
        hub = RealtimeHub()
        tab_one, tab_two, other = FakeSocket(), FakeSocket(), FakeSocket()

        async def scenario():
            hub.attach(1, tab_one)
            hub.attach(1, tab_two)
            hub.attach(2, other)
            scheduled = hub.emit_social_update(1)
            await hub.drain()
            return scheduled

        assert run_async(scenario()) == 2
        assert tab_one.sent == [{"type": "social:update"}]
        assert tab_two.sent == [{"type": "social:update"}]
        assert other.sent == []

    def test_offline_user_gets_nothing(self):
        hub = RealtimeHub()
        assert hub.emit_xp_update(42, {"total": 1}) == 0

    def test_closed_socket_is_skipped(self):
        hub = RealtimeHub()
        sock = FakeSocket()
        sock.client_state = WebSocketState.DISCONNECTED

        async def scenario():
            hub.attach(1, sock)
            return hub.emit_social_update(1)

        assert run_async(scenario()) == 0

    def test_failing_send_deregisters_socket(self):
        hub = RealtimeHub()
        broken, healthy = FakeSocket(fail=True), FakeSocket()

        async def scenario():
            hub.attach(1, broken)
            hub.attach(1, healthy)
            hub.emit_xp_update(1, {"total": 5, "delta": 5, "breakdown": []})
            await hub.drain()

        run_async(scenario())
        assert hub.registry.connections_for(1) == [healthy]
        assert healthy.sent[0]["type"] == "xp:update"
        assert healthy.sent[0]["payload"]["total"] == 5

    def test_duplicate_targets_receive_one_frame(self):
        hub = RealtimeHub()
        sock = FakeSocket()

        async def scenario():
            hub.attach(1, sock)
            hub.emit_notifications_update([1, 1, 1])
            await hub.drain()

        run_async(scenario())
        assert sock.sent == [{"type": "sync", "scope": "notifications", "meta": {}}]

    def test_network_sync_resolves_members_at_call_time(self):
        roster = {"net_a": [1]}
        hub = RealtimeHub(member_resolver=lambda nid: roster.get(nid, []))
        first, second = FakeSocket(), FakeSocket()

        async def scenario():
            hub.attach(1, first)
            hub.attach(2, second)
            hub.emit_network_sync("net_a", "players")
            roster["net_a"] = [1, 2]
            hub.emit_network_sync("net_a", "matches", {"reason": "merged"})
            await hub.drain()

        run_async(scenario())
        assert [f["scope"] for f in first.sent] == ["players", "matches"]
        assert second.sent == [{"type": "sync", "scope": "matches", "meta": {"reason": "merged"}}]

    def test_network_sync_rejects_unknown_scope(self):
        hub = RealtimeHub(member_resolver=lambda nid: [])
        with pytest.raises(ValueError):
            hub.emit_network_sync("net_a", "everything")

    def test_emit_from_worker_thread(self):
        hub = RealtimeHub()
        sock = FakeSocket()

        async def scenario():
            hub.attach(1, sock)
            await asyncio.to_thread(hub.emit_social_update, 1)
            for _ in range(20):
                if sock.sent:
                    break
                await asyncio.sleep(0.01)

        run_async(scenario())
        assert sock.sent == [{"type": "social:update"}]

    def test_emit_without_loop_does_not_raise(self):
        hub = RealtimeHub()
        sock = FakeSocket()
        hub.registry.register(1, sock)
        hub.emit_social_update(1)
        assert sock.sent == []

    def test_detach(self):
        hub = RealtimeHub()
        sock = FakeSocket()

        async def scenario():
            hub.attach(1, sock)
            hub.detach(1, sock)

        run_async(scenario())
        assert hub.registry.connection_count == 0
