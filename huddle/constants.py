"""
huddle.constants — Shared Constants & Helpers
==============================================

Single source of truth for the live-push vocabulary and the leveling
formula.  Import from here instead of duplicating in services and routes.
"""

from __future__ import annotations

import math

# ---------------------------------------------------------------------------
# Live-push frame types
# ---------------------------------------------------------------------------
FRAME_CONNECTION_ACK = "connection:ack"
FRAME_XP_UPDATE = "xp:update"
FRAME_SOCIAL_UPDATE = "social:update"
FRAME_SYNC = "sync"

# Scopes carried by ``sync`` frames
SCOPE_PLAYERS = "players"
SCOPE_MATCHES = "matches"
SCOPE_NETWORK = "network"
SCOPE_REQUESTS = "requests"
SCOPE_NOTIFICATIONS = "notifications"

SYNC_SCOPES: frozenset[str] = frozenset({
    SCOPE_PLAYERS,
    SCOPE_MATCHES,
    SCOPE_NETWORK,
    SCOPE_REQUESTS,
    SCOPE_NOTIFICATIONS,
})

# WebSocket close code for a rejected handshake (policy violation)
WS_UNAUTHORIZED = 1008

# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------
OG_FRACTION = 0.25

# ---------------------------------------------------------------------------
# Notification types
# ---------------------------------------------------------------------------
NOTIFY_REQUEST_RECEIVED = "friend_request:received"
NOTIFY_REQUEST_ACCEPTED = "friend_request:accepted"
NOTIFY_NETWORK_JOINED = "network:joined"
NOTIFY_NETWORK_LEFT = "network:left"
NOTIFY_NETWORK_KICKED = "network:kicked"


# ---------------------------------------------------------------------------
# Leveling formula — THE single canonical implementation
# ---------------------------------------------------------------------------
XP_LEVEL_BASE = 120
XP_LEVEL_STEP = 30


def xp_for_level(level: int) -> int:
    """XP needed to go from *level* to *level + 1*.

    Linear curve: ``base + (level - 1) * step`` (120, 150, 180, ...).
    """
    return XP_LEVEL_BASE + (max(level, 1) - 1) * XP_LEVEL_STEP


def level_state(total_xp: int) -> dict:
    """Break a running total into level / progress fields."""
    remaining = max(0, total_xp)
    level = 1
    requirement = xp_for_level(level)
    while remaining >= requirement:
        remaining -= requirement
        level += 1
        requirement = xp_for_level(level)

    return {
        "level": level,
        "xp_into_level": remaining,
        "xp_for_level": requirement,
        "progress": remaining / requirement if requirement else 0.0,
    }


def og_quota(member_count: int) -> int:
    """How many of a network's earliest members count as OG."""
    if member_count <= 0:
        return 0
    return max(1, math.ceil(member_count * OG_FRACTION))
