"""
huddle.services.realtime_service — Connection Registry & Fan-out Hub
=====================================================================

Keeps every open WebSocket of every user and pushes JSON frames to them.

Delivery model:
    * Best effort, at most once per open connection.  A socket that is not
      CONNECTED is skipped, never queued.
    * Fire-and-forget.  ``emit_*`` never awaits network I/O; sends are
      scheduled on the event loop that owns the sockets.  This works from
      the event loop itself *and* from the threadpool that runs the sync
      route handlers (``asyncio.run_coroutine_threadsafe``).
    * A failing send is logged at DEBUG and the socket is deregistered.
      It never fails the business operation that triggered the push.

``emit_network_sync`` resolves the member list through ``member_resolver``
at call time, so a push issued after a merge reaches the merged roster.
Callers emit only after their transaction has committed.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any, Protocol

from starlette.websockets import WebSocketState

from huddle.constants import (
    FRAME_SOCIAL_UPDATE,
    FRAME_SYNC,
    FRAME_XP_UPDATE,
    SCOPE_NOTIFICATIONS,
    SYNC_SCOPES,
)

logger = logging.getLogger(__name__)


class LiveConnection(Protocol):
    """The slice of :class:`starlette.websockets.WebSocket` the hub uses."""

    client_state: WebSocketState
    application_state: WebSocketState

    async def send_text(self, data: str) -> None: ...


MemberResolver = Callable[[str], list[int]]


# ---------------------------------------------------------------------------
# ConnectionRegistry — user id → set of open connections
# ---------------------------------------------------------------------------
class ConnectionRegistry:
    """Thread-safe registry of live connections.

    The lock is held only for dict/set bookkeeping, never across I/O.
    """

    def __init__(self) -> None:
        self._connections: dict[int, set[LiveConnection]] = {}
        self._lock = threading.Lock()

    def register(self, user_id: int, connection: LiveConnection) -> None:
        with self._lock:
            self._connections.setdefault(user_id, set()).add(connection)

    def unregister(self, user_id: int, connection: LiveConnection) -> None:
        """Drop *connection*; the user's entry goes with its last socket."""
        with self._lock:
            conns = self._connections.get(user_id)
            if conns is None:
                return
            conns.discard(connection)
            if not conns:
                del self._connections[user_id]

    def connections_for(self, user_id: int) -> list[LiveConnection]:
        """Snapshot copy, safe to iterate while others connect/disconnect."""
        with self._lock:
            return list(self._connections.get(user_id, ()))

    def has_user(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._connections

    @property
    def user_count(self) -> int:
        with self._lock:
            return len(self._connections)

    @property
    def connection_count(self) -> int:
        with self._lock:
            return sum(len(conns) for conns in self._connections.values())


def _is_open(connection: LiveConnection) -> bool:
    return (
        getattr(connection, "client_state", WebSocketState.CONNECTED) == WebSocketState.CONNECTED
        and getattr(connection, "application_state", WebSocketState.CONNECTED)
        == WebSocketState.CONNECTED
    )


# ---------------------------------------------------------------------------
# RealtimeHub — push primitives
# ---------------------------------------------------------------------------
class RealtimeHub:
    """Fan-out coordinator.

    Parameters
    ----------
    member_resolver:
        ``network_id -> [user_id, ...]``; called fresh on every
        :meth:`emit_network_sync`.
    registry:
        Optional pre-built registry (tests share one between hubs).
    """

    def __init__(
        self,
        member_resolver: MemberResolver | None = None,
        registry: ConnectionRegistry | None = None,
    ) -> None:
        self.registry = registry or ConnectionRegistry()
        self._member_resolver = member_resolver
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending: set[asyncio.Task] = set()

    # -- connection lifecycle ------------------------------------------------
    def attach(self, user_id: int, connection: LiveConnection) -> None:
        """Register an accepted socket.  Must run on the socket's loop."""
        self._loop = asyncio.get_running_loop()
        self.registry.register(user_id, connection)
        logger.info(
            "Live connection opened for user %s (%d open)",
            user_id, self.registry.connection_count,
        )

    def detach(self, user_id: int, connection: LiveConnection) -> None:
        self.registry.unregister(user_id, connection)
        logger.info(
            "Live connection closed for user %s (%d open)",
            user_id, self.registry.connection_count,
        )

    # -- primitives -----------------------------------------------------------
    def emit_to_user(self, user_id: int, payload: dict[str, Any]) -> int:
        """Push *payload* to every open connection of one user.

        Returns the number of sends scheduled.
        """
        targets = [c for c in self.registry.connections_for(user_id) if _is_open(c)]
        if not targets:
            return 0
        text = json.dumps(payload, default=str)
        for connection in targets:
            self._schedule(self._send(user_id, connection, text))
        return len(targets)

    def emit_to_users(self, user_ids: Iterable[int], payload: dict[str, Any]) -> int:
        scheduled = 0
        for user_id in dict.fromkeys(user_ids):
            scheduled += self.emit_to_user(user_id, payload)
        return scheduled

    def emit_network_sync(
        self,
        network_id: str,
        scope: str,
        meta: dict[str, Any] | None = None,
    ) -> int:
        """Tell every *current* member of a network to refresh *scope*."""
        if scope not in SYNC_SCOPES:
            raise ValueError(f"Unknown sync scope: {scope!r}")
        if self._member_resolver is None or self.registry.user_count == 0:
            return 0
        member_ids = self._member_resolver(network_id)
        return self.emit_to_users(
            member_ids, {"type": FRAME_SYNC, "scope": scope, "meta": meta or {}}
        )

    # -- thin wrappers --------------------------------------------------------
    def emit_social_update(self, user_ids: int | Iterable[int]) -> int:
        if isinstance(user_ids, int):
            user_ids = [user_ids]
        return self.emit_to_users(user_ids, {"type": FRAME_SOCIAL_UPDATE})

    def emit_xp_update(self, user_id: int, summary: dict[str, Any]) -> int:
        return self.emit_to_user(user_id, {"type": FRAME_XP_UPDATE, "payload": summary})

    def emit_notifications_update(self, user_ids: int | Iterable[int]) -> int:
        if isinstance(user_ids, int):
            user_ids = [user_ids]
        return self.emit_to_users(
            user_ids, {"type": FRAME_SYNC, "scope": SCOPE_NOTIFICATIONS, "meta": {}}
        )

    # -- delivery -------------------------------------------------------------
    async def _send(self, user_id: int, connection: LiveConnection, text: str) -> None:
        if not _is_open(connection):
            return
        try:
            await connection.send_text(text)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Dropping live connection for user %s: %s", user_id, exc)
            self.registry.unregister(user_id, connection)

    def _schedule(self, coro) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None and (self._loop is None or running is self._loop):
            task = running.create_task(coro)
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        elif self._loop is not None and not self._loop.is_closed():
            asyncio.run_coroutine_threadsafe(coro, self._loop)
        else:
            coro.close()

    async def drain(self) -> None:
        """Wait for sends scheduled from this loop (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
