"""
huddle.services.ledger_service — Idempotent XP Ledger
======================================================

Every XP change is an :class:`~huddle.database.models.XpEvent` row, and
``User.xp_total`` is a cache of their sum.  Nothing else writes
``xp_total``.

Per event:

    next_total = max(0, current + amount)
    applied    = next_total - current

The row stores ``applied``, not the requested amount, so the sum of the
ledger always equals the cached total even when a penalty is clamped at
zero.  Rows are inserted inside a SAVEPOINT; a violation of the
``(user_id, type, context)`` unique constraint is a silent no-op for that
event and the batch carries on.  Any other storage error propagates and
the call's transaction rolls back.

Network-wide rewards (:data:`~huddle.engine.rewards.NETWORK_WIDE_TYPES`) are
paid to every *current* member of the actor's network, each in its own
transaction.

No route in this package calls :func:`award_match_completion`,
:func:`award_player_created` or :func:`award_player_removed`.  They are the
entry points for the player/match CRUD layer, which lives outside Huddle
and calls them after its own write commits.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from huddle.constants import level_state
from huddle.database.engine import get_session
from huddle.database.models import Match, Referral, User, XpEvent
from huddle.engine.rewards import (
    XpEventSpec,
    match_completion_events,
    match_screenshot_event,
    player_created_event,
    player_removed_event,
    referral_event,
    reward_catalogue,
    team_share_event,
)
from huddle.errors import NotFoundError, ValidationError
from huddle.services.network_service import member_ids_in

if TYPE_CHECKING:
    from huddle.services.realtime_service import RealtimeHub

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class XpBreakdownEntry:
    type: str
    amount: int

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "amount": self.amount}


@dataclass(frozen=True, slots=True)
class XpSummary:
    """Result of one ledger call for one user."""

    total: int
    delta: int = 0
    breakdown: tuple[XpBreakdownEntry, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "delta": self.delta,
            "breakdown": [entry.to_dict() for entry in self.breakdown],
        }


# ---------------------------------------------------------------------------
# Core
# ---------------------------------------------------------------------------
def _insert_event(session: Session, user: User, event: XpEventSpec) -> int | None:
    """Record one event against *user*.

    Returns the applied delta, or ``None`` when the context was already
    credited.
    """
    context = event.context or uuid.uuid4().hex
    current = user.xp_total
    next_total = max(0, current + event.amount)
    applied = next_total - current

    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(XpEvent(
                user_id=user.id,
                type=str(event.type),
                context=context,
                amount=applied,
            ))
            session.flush()
    except IntegrityError:
        logger.debug("Duplicate XP event skipped: user=%s type=%s context=%s",
                     user.id, event.type, context)
        return None

    if applied:
        user.xp_total = next_total
    return applied


def apply_events(
    engine: Engine,
    user_id: int,
    events: Iterable[XpEventSpec],
    hub: RealtimeHub | None = None,
) -> XpSummary:
    """Apply *events* to one user in a single transaction.

    Raises
    ------
    NotFoundError
        If the user does not exist.
    """
    breakdown: list[XpBreakdownEntry] = []
    delta = 0

    with get_session(engine) as session:
        user = session.scalar(select(User).where(User.id == user_id).with_for_update())
        if user is None:
            raise NotFoundError("User not found.")

        for event in events:
            applied = _insert_event(session, user, event)
            if applied:
                breakdown.append(XpBreakdownEntry(str(event.type), applied))
                delta += applied

        summary = XpSummary(total=user.xp_total, delta=delta, breakdown=tuple(breakdown))

    if summary.delta:
        logger.debug("XP %+d for user %s (total %d)", summary.delta, user_id, summary.total)
        if hub is not None:
            hub.emit_xp_update(user_id, summary.to_dict())
    return summary


def apply_network_events(
    engine: Engine,
    actor_id: int,
    events: Iterable[XpEventSpec],
    hub: RealtimeHub | None = None,
) -> XpSummary:
    """Pay *events* to every current member of the actor's network.

    Members are credited independently, so a duplicate for one member never
    blocks another.  Returns the actor's own summary.
    """
    events = list(events)
    with get_session(engine) as session:
        network_id = session.scalar(select(User.network_id).where(User.id == actor_id))
        member_ids = member_ids_in(session, network_id) if network_id else []
    if not member_ids:
        member_ids = [actor_id]

    actor_summary: XpSummary | None = None
    for member_id in member_ids:
        try:
            summary = apply_events(engine, member_id, events, hub)
        except NotFoundError:
            if member_id == actor_id:
                raise
            # Deleted between the roster read and the credit.
            logger.info("Skipping XP for vanished member %s", member_id)
            continue
        if member_id == actor_id:
            actor_summary = summary

    if actor_summary is None:
        actor_summary = apply_events(engine, actor_id, events, hub)
    return actor_summary


# ---------------------------------------------------------------------------
# Reward helpers
# ---------------------------------------------------------------------------
def award_match_completion(
    engine: Engine,
    actor_id: int,
    match_id: int,
    *,
    map_selection: bool = False,
    momentum: bool = False,
    hub: RealtimeHub | None = None,
) -> XpSummary:
    events = match_completion_events(match_id, map_selection=map_selection, momentum=momentum)
    return apply_network_events(engine, actor_id, events, hub)


def award_player_created(
    engine: Engine, actor_id: int, player_id: int, hub: RealtimeHub | None = None
) -> XpSummary:
    return apply_network_events(engine, actor_id, [player_created_event(player_id)], hub)


def award_player_removed(
    engine: Engine, actor_id: int, player_id: int, hub: RealtimeHub | None = None
) -> XpSummary:
    return apply_network_events(engine, actor_id, [player_removed_event(player_id)], hub)


def award_team_share(
    engine: Engine, actor_id: int, signature: str, hub: RealtimeHub | None = None
) -> XpSummary:
    return apply_network_events(engine, actor_id, [team_share_event(signature)], hub)


def award_match_screenshot(
    engine: Engine, actor_id: int, match_id: int, hub: RealtimeHub | None = None
) -> XpSummary:
    """Actor-only reward; the match must belong to the actor's network."""
    with get_session(engine) as session:
        network_id = session.scalar(select(User.network_id).where(User.id == actor_id))
        if network_id is None:
            raise NotFoundError("User not found.")
        match = session.scalar(
            select(Match.id).where(Match.id == match_id, Match.network_id == network_id)
        )
        if match is None:
            raise NotFoundError("Match not found.")
    return apply_events(engine, actor_id, [match_screenshot_event(match_id)], hub)


def claim_referral(
    engine: Engine, referrer_id: int, referred_id: int, hub: RealtimeHub | None = None
) -> XpSummary:
    """Credit *referrer_id* once for bringing in *referred_id*.

    A referred user can only ever be credited to one referrer; later claims
    return a zero-delta summary.
    """
    if referrer_id == referred_id:
        raise ValidationError("You cannot refer yourself.", code="self_referral")

    with get_session(engine) as session:
        referrer = session.get(User, referrer_id)
        if referrer is None:
            raise NotFoundError("Referrer not found.")
        unchanged = XpSummary(total=referrer.xp_total)

        already = session.scalar(
            select(Referral.id).where(Referral.referred_id == referred_id)
        )
        if already is not None:
            return unchanged
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(Referral(referrer_id=referrer_id, referred_id=referred_id))
                session.flush()
        except IntegrityError:
            return unchanged

    logger.info("Referral recorded: %s referred %s", referrer_id, referred_id)
    return apply_events(engine, referrer_id, [referral_event(referred_id)], hub)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_xp_snapshot(engine: Engine, user_id: int) -> dict[str, Any]:
    with get_session(engine) as session:
        total = session.scalar(select(User.xp_total).where(User.id == user_id))
    if total is None:
        raise NotFoundError("User not found.")
    return {"xp": total, **level_state(total)}


def get_reward_catalogue() -> dict[str, int]:
    return reward_catalogue()
