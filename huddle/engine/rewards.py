"""
huddle.engine.rewards — XpEventSpec and the Reward Catalogue
=============================================================

Every XP-bearing action is normalized into one or more :class:`XpEventSpec`
envelopes before the ledger applies them.  The ``context`` is the
de-duplication key: the ledger credits a given ``(user, type, context)``
at most once, so contexts are derived from the entity that earned the
reward (``match:42:base``) whenever a retry must not pay twice.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass

__all__ = [
    "RewardType",
    "XpEventSpec",
    "REWARD_VALUES",
    "NETWORK_WIDE_TYPES",
    "match_completion_events",
    "player_created_event",
    "player_removed_event",
    "team_share_event",
    "match_screenshot_event",
    "referral_event",
    "reward_catalogue",
]


class RewardType(enum.StrEnum):
    """All event types recorded in the XP ledger."""
    MATCH_COMPLETED = "match:completed"
    MATCH_MAP = "match:map"
    MATCH_MOMENTUM = "match:momentum"
    TEAM_SHARE = "share:team"
    MATCH_SCREENSHOT = "screenshot:history"
    PLAYER_CREATE = "player:create"
    PLAYER_REMOVE = "player:remove"
    REFERRAL = "referral:bonus"


# ---------------------------------------------------------------------------
# Base XP per reward type
# ---------------------------------------------------------------------------
REWARD_VALUES: dict[RewardType, int] = {
    RewardType.MATCH_COMPLETED: 50,
    RewardType.MATCH_MAP: 20,
    RewardType.MATCH_MOMENTUM: 15,
    RewardType.TEAM_SHARE: 15,
    RewardType.MATCH_SCREENSHOT: 12,
    RewardType.PLAYER_CREATE: 8,
    RewardType.PLAYER_REMOVE: -5,
    RewardType.REFERRAL: 150,
}

# Shared-credit pool: these are paid to every current member of the
# actor's network, not only the actor.
NETWORK_WIDE_TYPES: frozenset[RewardType] = frozenset({
    RewardType.MATCH_COMPLETED,
    RewardType.MATCH_MAP,
    RewardType.MATCH_MOMENTUM,
    RewardType.TEAM_SHARE,
    RewardType.PLAYER_CREATE,
    RewardType.PLAYER_REMOVE,
})


# ---------------------------------------------------------------------------
# XpEventSpec — the ledger's input envelope
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class XpEventSpec:
    """One reward to apply.  ``context=None`` means "never deduplicate"."""

    type: str
    amount: int
    context: str | None = None


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
def match_completion_events(
    match_id: int, *, map_selection: bool = False, momentum: bool = False
) -> list[XpEventSpec]:
    events = [
        XpEventSpec(
            RewardType.MATCH_COMPLETED,
            REWARD_VALUES[RewardType.MATCH_COMPLETED],
            f"match:{match_id}:base",
        )
    ]
    if map_selection:
        events.append(XpEventSpec(
            RewardType.MATCH_MAP,
            REWARD_VALUES[RewardType.MATCH_MAP],
            f"match:{match_id}:map",
        ))
    if momentum:
        events.append(XpEventSpec(
            RewardType.MATCH_MOMENTUM,
            REWARD_VALUES[RewardType.MATCH_MOMENTUM],
            f"match:{match_id}:momentum",
        ))
    return events


def player_created_event(player_id: int) -> XpEventSpec:
    return XpEventSpec(
        RewardType.PLAYER_CREATE,
        REWARD_VALUES[RewardType.PLAYER_CREATE],
        f"player:{player_id}:create",
    )


def player_removed_event(player_id: int) -> XpEventSpec:
    """Removal is penalized every time, so the context is unique per call."""
    return XpEventSpec(
        RewardType.PLAYER_REMOVE,
        REWARD_VALUES[RewardType.PLAYER_REMOVE],
        f"player:{player_id}:remove:{uuid.uuid4().hex}",
    )


def team_share_event(signature: str) -> XpEventSpec:
    return XpEventSpec(
        RewardType.TEAM_SHARE,
        REWARD_VALUES[RewardType.TEAM_SHARE],
        f"teamshare:{signature}",
    )


def match_screenshot_event(match_id: int) -> XpEventSpec:
    return XpEventSpec(
        RewardType.MATCH_SCREENSHOT,
        REWARD_VALUES[RewardType.MATCH_SCREENSHOT],
        f"matchshot:{match_id}",
    )


def referral_event(referred_id: int) -> XpEventSpec:
    return XpEventSpec(
        RewardType.REFERRAL,
        REWARD_VALUES[RewardType.REFERRAL],
        f"referral:{referred_id}",
    )


def reward_catalogue() -> dict[str, int]:
    """Public view of the reward values (``GET /api/xp/rewards``)."""
    return {
        "match_base": REWARD_VALUES[RewardType.MATCH_COMPLETED],
        "match_map_bonus": REWARD_VALUES[RewardType.MATCH_MAP],
        "match_momentum_bonus": REWARD_VALUES[RewardType.MATCH_MOMENTUM],
        "team_share": REWARD_VALUES[RewardType.TEAM_SHARE],
        "match_screenshot": REWARD_VALUES[RewardType.MATCH_SCREENSHOT],
        "player_create": REWARD_VALUES[RewardType.PLAYER_CREATE],
        "player_remove": REWARD_VALUES[RewardType.PLAYER_REMOVE],
        "referral_bonus": REWARD_VALUES[RewardType.REFERRAL],
    }
