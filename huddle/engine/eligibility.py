"""
huddle.engine.eligibility — OG, Kick and Referral Badge Rules
==============================================================

Pure functions over a membership snapshot.  No DB I/O inside the engine;
the services load :class:`MemberSnapshot` rows and referrer ids and hand
them in.  Nothing here is cached or persisted — badges move automatically
as membership changes (joins, merges, splits, kicks).

Rules:
  * **OG** — the earliest ``max(1, ceil(N * 0.25))`` members by
    ``network_joined_at`` (ties broken by user id).
  * **Kick-eligible** — identical to OG.
  * **Referral** — the member is a referrer on at least one referral row.
  * **Search** — badges are disclosed only when the user opted in.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from huddle.constants import og_quota

__all__ = [
    "MemberBadges",
    "MemberSnapshot",
    "badges_for_search",
    "compute_badges",
    "is_kick_eligible",
    "og_member_ids",
    "og_quota",
]


@dataclass(frozen=True, slots=True)
class MemberSnapshot:
    """The two fields eligibility depends on."""

    user_id: int
    joined_at: datetime


@dataclass(frozen=True, slots=True)
class MemberBadges:
    og: bool = False
    referral: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {"og": self.og, "referral": self.referral}


HIDDEN = MemberBadges()


def og_member_ids(members: Iterable[MemberSnapshot]) -> set[int]:
    """Ids of the OG (earliest-joined) quarter of *members*."""
    ordered = sorted(members, key=lambda m: (m.joined_at, m.user_id))
    return {m.user_id for m in ordered[: og_quota(len(ordered))]}


def is_kick_eligible(user_id: int, members: Iterable[MemberSnapshot]) -> bool:
    return user_id in og_member_ids(members)


def compute_badges(
    members: Iterable[MemberSnapshot],
    referrer_ids: Iterable[int],
) -> dict[int, MemberBadges]:
    """Badge map for every member of one network."""
    members = list(members)
    og_ids = og_member_ids(members)
    referrers = set(referrer_ids)
    return {
        m.user_id: MemberBadges(og=m.user_id in og_ids, referral=m.user_id in referrers)
        for m in members
    }


def badges_for_search(visible: bool, badges: MemberBadges | None) -> MemberBadges:
    """Mask badges for cross-network search results."""
    if not visible or badges is None:
        return HIDDEN
    return badges
