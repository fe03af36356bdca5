"""
huddle.services.merge_service — Network Merge & Split Engine
=============================================================

**Merge** folds a *source* network into a *target* network.  The steps run
in order inside the caller's transaction:

    1. re-parent players
    2. re-parent matches
    3. union map bans per game, drop the source preference row
    4. re-parent users (moved users get a fresh ``network_joined_at``)
    5. delete the source network row

If any step raises, the whole transaction rolls back and the error is
re-raised unchanged.  Pending requests that became internal are removed
*after* commit by the caller.

**Split** moves one user out into a brand-new isolated network: create the
network, move the user, clear their pending requests, delete the vacated
network if it is now empty.  One transaction.

``leave_network`` and ``kick`` wrap a split with validation and push
``sync``/``social:update`` frames to both networks once committed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import Engine, delete, update
from sqlalchemy.orm import Session

from huddle.constants import (
    NOTIFY_NETWORK_KICKED,
    NOTIFY_NETWORK_LEFT,
    SCOPE_MATCHES,
    SCOPE_NETWORK,
    SCOPE_PLAYERS,
)
from huddle.database.engine import get_session
from huddle.database.models import Match, Network, Player, User
from huddle.engine.eligibility import og_member_ids
from huddle.errors import AuthorizationError, NotFoundError, ValidationError
from huddle.services import map_preference_service, network_service
from huddle.services.notification_service import stage_notification

if TYPE_CHECKING:
    from huddle.services.realtime_service import RealtimeHub

logger = logging.getLogger(__name__)

MergeStep = Callable[[Session], int]


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------
@dataclass
class NetworkMerge:
    """Unit of work folding ``source_id`` into ``target_id``."""

    source_id: str
    target_id: str
    steps: list[tuple[str, MergeStep]] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=dict)

    @classmethod
    def plan(cls, source_id: str, target_id: str) -> NetworkMerge:
        merge = cls(source_id, target_id)
        merge.steps = [
            ("players", merge._reparent_players),
            ("matches", merge._reparent_matches),
            ("map_preferences", merge._merge_map_preferences),
            ("users", merge._reparent_users),
            ("network", merge._delete_source),
        ]
        return merge

    def apply(self, session: Session) -> dict[str, int]:
        for name, step in self.steps:
            self.counts[name] = step(session)
        return self.counts

    # -- steps ----------------------------------------------------------------
    def _reparent_players(self, session: Session) -> int:
        result = session.execute(
            update(Player)
            .where(Player.network_id == self.source_id)
            .values(network_id=self.target_id)
        )
        return result.rowcount or 0

    def _reparent_matches(self, session: Session) -> int:
        result = session.execute(
            update(Match)
            .where(Match.network_id == self.source_id)
            .values(network_id=self.target_id)
        )
        return result.rowcount or 0

    def _merge_map_preferences(self, session: Session) -> int:
        map_preference_service.merge_preferences(session, self.source_id, self.target_id)
        return 1

    def _reparent_users(self, session: Session) -> int:
        result = session.execute(
            update(User)
            .where(User.network_id == self.source_id)
            .values(network_id=self.target_id, network_joined_at=datetime.now(UTC))
        )
        return result.rowcount or 0

    def _delete_source(self, session: Session) -> int:
        result = session.execute(delete(Network).where(Network.id == self.source_id))
        return result.rowcount or 0


def merge_networks(session: Session, source_id: str, target_id: str) -> NetworkMerge | None:
    """Apply a :class:`NetworkMerge` inside *session*'s transaction."""
    if source_id == target_id:
        return None
    network_service.ensure_network(session, target_id)
    network_service.ensure_network(session, source_id)

    merge = NetworkMerge.plan(source_id, target_id)
    try:
        merge.apply(session)
    except Exception:
        logger.exception("Merge %s -> %s failed, rolling back", source_id, target_id)
        raise
    logger.info(
        "Merged network %s into %s (users=%d players=%d matches=%d)",
        source_id, target_id,
        merge.counts["users"], merge.counts["players"], merge.counts["matches"],
    )
    return merge


# ---------------------------------------------------------------------------
# Split
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class SplitResult:
    user_id: int
    old_network_id: str
    new_network_id: str
    old_network_deleted: bool
    remaining_member_ids: tuple[int, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": str(self.user_id),
            "oldNetworkId": self.old_network_id,
            "networkId": self.new_network_id,
            "oldNetworkDeleted": self.old_network_deleted,
        }


def split_user(session: Session, user_id: int) -> SplitResult:
    """Move *user_id* into a new isolated network within *session*."""
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found.")
    old_network_id = user.network_id

    network = network_service.create_isolated_network(session)
    network_service.move_user_to_network(session, user_id, network.id)
    network_service.clear_user_friend_requests(session, user_id)
    deleted = network_service.delete_network_if_empty(session, old_network_id)
    remaining = () if deleted else tuple(network_service.member_ids_in(session, old_network_id))

    return SplitResult(
        user_id=user_id,
        old_network_id=old_network_id,
        new_network_id=network.id,
        old_network_deleted=deleted,
        remaining_member_ids=remaining,
    )


def _publish_split(hub: RealtimeHub | None, result: SplitResult, reason: str) -> None:
    if hub is None:
        return
    meta = {"reason": reason, "userId": str(result.user_id)}
    if result.remaining_member_ids:
        for scope in (SCOPE_NETWORK, SCOPE_PLAYERS, SCOPE_MATCHES):
            hub.emit_network_sync(result.old_network_id, scope, meta)
        hub.emit_social_update(result.remaining_member_ids)
    hub.emit_network_sync(result.new_network_id, SCOPE_NETWORK, meta)
    hub.emit_social_update(result.user_id)


def leave_network(engine: Engine, user_id: int, hub: RealtimeHub | None = None) -> SplitResult:
    """The user walks out of their network into a fresh one of their own."""
    with get_session(engine) as session:
        result = split_user(session, user_id)
        if result.remaining_member_ids:
            stage_notification(
                session,
                result.remaining_member_ids,
                NOTIFY_NETWORK_LEFT,
                data={"userId": str(user_id)},
            )

    logger.info(
        "User %s left network %s (now in %s, %d remain)",
        user_id, result.old_network_id, result.new_network_id,
        len(result.remaining_member_ids),
    )
    _publish_split(hub, result, "left")
    if hub is not None and result.remaining_member_ids:
        hub.emit_notifications_update(result.remaining_member_ids)
    return result


def kick(
    engine: Engine, target_id: int, actor_id: int, hub: RealtimeHub | None = None
) -> SplitResult:
    """An OG member removes a non-OG member of the same network."""
    if target_id == actor_id:
        raise ValidationError("You cannot kick yourself.", code="self_kick")

    with get_session(engine) as session:
        actor = session.get(User, actor_id)
        target = session.get(User, target_id)
        if actor is None:
            raise NotFoundError("User not found.")
        if target is None or target.network_id != actor.network_id:
            raise NotFoundError("That user is not in your network.")

        eligible = og_member_ids(network_service.load_member_snapshots(session, actor.network_id))
        if actor_id not in eligible:
            raise AuthorizationError(
                "Only OG members can remove people from the network.", code="not_kick_eligible"
            )
        if target_id in eligible:
            raise AuthorizationError("OG members cannot be removed.", code="target_protected")

        result = split_user(session, target_id)
        stage_notification(
            session,
            target_id,
            NOTIFY_NETWORK_KICKED,
            data={"networkId": result.old_network_id, "byUserId": str(actor_id)},
        )

    logger.info("User %s kicked %s from network %s", actor_id, target_id, result.old_network_id)
    _publish_split(hub, result, "kicked")
    if hub is not None:
        hub.emit_notifications_update(target_id)
    return result
