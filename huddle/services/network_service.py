"""
huddle.services.network_service — Social Graph Store
=====================================================

Owns networks, membership and the friend-request handshake.

Two layers:

* **Session primitives** (``ensure_network``, ``move_user_to_network``,
  ``clear_user_friend_requests``, ``delete_network_if_empty`` …) take an open
  :class:`Session` so the merge/split engine can compose them inside a
  single transaction.
* **Operations** (``send_friend_request``, ``accept_friend_request``,
  ``get_network_state`` …) take an :class:`Engine`, open their own session
  and raise :mod:`huddle.errors` before any mutation.

Invariant: every user references exactly one network, and a network row
exists only while at least one user references it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Engine, and_, delete, func, or_, select, update
from sqlalchemy.orm import Session

from huddle.database.engine import get_session
from huddle.database.models import (
    FriendRequest,
    MapPreference,
    Match,
    Network,
    Notification,
    Player,
    Referral,
    User,
    XpEvent,
    new_network_id,
)
from huddle.engine.eligibility import (
    MemberSnapshot,
    badges_for_search,
    compute_badges,
    og_member_ids,
)
from huddle.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 8


@dataclass(frozen=True, slots=True)
class AcceptResult:
    """Outcome of an accepted friend request."""

    network_id: str
    joined_user_id: int
    merged_from: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "networkId": self.network_id,
            "joinedUserId": self.joined_user_id,
            "mergedFrom": self.merged_from,
        }


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _iso(value: datetime | None) -> str | None:
    return _as_utc(value).isoformat() if value else None


def _public_user(user: User) -> dict[str, Any]:
    return {"id": str(user.id), "username": user.username, "avatar": user.avatar}


# ---------------------------------------------------------------------------
# Session primitives
# ---------------------------------------------------------------------------
def ensure_network(session: Session, network_id: str | None = None) -> Network:
    """Return the network row for *network_id*, creating it if absent."""
    if network_id:
        network = session.get(Network, network_id)
        if network is not None:
            return network
    network = Network(id=network_id or new_network_id())
    session.add(network)
    session.flush()
    return network


def create_isolated_network(session: Session) -> Network:
    return ensure_network(session)


def move_user_to_network(session: Session, user_id: int, network_id: str) -> User:
    """Point *user_id* at *network_id* and stamp the join time."""
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found.")
    user.network_id = network_id
    user.network_joined_at = _utcnow()
    session.flush()
    return user


def clear_user_friend_requests(session: Session, user_id: int) -> int:
    """Delete every pending request the user sent or received."""
    result = session.execute(
        delete(FriendRequest).where(
            or_(FriendRequest.sender_id == user_id, FriendRequest.recipient_id == user_id)
        )
    )
    return result.rowcount or 0


def delete_network_if_empty(session: Session, network_id: str) -> bool:
    """Tear down *network_id* and its scoped rows once no user references it."""
    remaining = session.scalar(
        select(func.count()).select_from(User).where(User.network_id == network_id)
    )
    if remaining:
        return False

    session.execute(delete(MapPreference).where(MapPreference.network_id == network_id))
    session.execute(delete(Player).where(Player.network_id == network_id))
    session.execute(delete(Match).where(Match.network_id == network_id))
    session.execute(delete(Network).where(Network.id == network_id))
    logger.info("Network %s is empty and was deleted", network_id)
    return True


def remove_internal_requests(session: Session, network_id: str) -> int:
    """Drop pending requests between two members of the same network."""
    member_ids = member_ids_in(session, network_id)
    if len(member_ids) < 2:
        return 0
    result = session.execute(
        delete(FriendRequest).where(
            FriendRequest.sender_id.in_(member_ids),
            FriendRequest.recipient_id.in_(member_ids),
        )
    )
    return result.rowcount or 0


def member_ids_in(session: Session, network_id: str) -> list[int]:
    return list(session.scalars(
        select(User.id).where(User.network_id == network_id).order_by(User.id)
    ).all())


def load_member_snapshots(session: Session, network_id: str) -> list[MemberSnapshot]:
    rows = session.execute(
        select(User.id, User.network_joined_at).where(User.network_id == network_id)
    ).all()
    return [MemberSnapshot(row.id, _as_utc(row.network_joined_at)) for row in rows]


def load_referrer_ids(session: Session, user_ids: list[int]) -> set[int]:
    """Subset of *user_ids* that referred at least one account."""
    if not user_ids:
        return set()
    return set(session.scalars(
        select(Referral.referrer_id).where(Referral.referrer_id.in_(user_ids)).distinct()
    ).all())


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def list_member_ids(engine: Engine, network_id: str) -> list[int]:
    with get_session(engine) as session:
        return member_ids_in(session, network_id)


def get_network_state(engine: Engine, network_id: str, user_id: int) -> dict[str, Any]:
    """Everything the social panel renders.

    Returns ``{"networkId", "members", "incoming", "outgoing"}``.  Members
    carry their badges and kick eligibility and are ordered by username,
    case-insensitive.
    """
    with get_session(engine) as session:
        members = session.scalars(
            select(User)
            .where(User.network_id == network_id)
            .order_by(func.lower(User.username), User.id)
        ).all()
        snapshots = [MemberSnapshot(m.id, _as_utc(m.network_joined_at)) for m in members]
        badges = compute_badges(snapshots, load_referrer_ids(session, [m.id for m in members]))
        eligible = og_member_ids(snapshots)

        incoming_rows = session.execute(
            select(FriendRequest, User)
            .join(User, User.id == FriendRequest.sender_id)
            .where(FriendRequest.recipient_id == user_id, FriendRequest.status == "pending")
            .order_by(FriendRequest.created_at.desc(), FriendRequest.id.desc())
        ).all()
        outgoing_rows = session.execute(
            select(FriendRequest, User)
            .join(User, User.id == FriendRequest.recipient_id)
            .where(FriendRequest.sender_id == user_id, FriendRequest.status == "pending")
            .order_by(FriendRequest.created_at.desc(), FriendRequest.id.desc())
        ).all()

        return {
            "networkId": network_id,
            "members": [
                {
                    **_public_user(m),
                    "joinedAt": _iso(m.network_joined_at),
                    "xp": m.xp_total,
                    "isSelf": m.id == user_id,
                    "og": badges[m.id].og,
                    "referral": badges[m.id].referral,
                    "kickEligible": m.id in eligible,
                }
                for m in members
            ],
            "incoming": [
                {"id": req.id, "createdAt": _iso(req.created_at), "user": _public_user(sender)}
                for req, sender in incoming_rows
            ],
            "outgoing": [
                {"id": req.id, "createdAt": _iso(req.created_at), "user": _public_user(recipient)}
                for req, recipient in outgoing_rows
            ],
        }


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_candidates(
    engine: Engine,
    query: str,
    user_id: int,
    network_id: str,
    limit: int = DEFAULT_SEARCH_LIMIT,
) -> list[dict[str, Any]]:
    """Users outside *network_id* whose name contains *query*.

    Excludes the caller and anyone with a pending request either way.
    Badges are disclosed only for candidates that opted in.
    """
    term = query.strip()
    if not term:
        return []
    pattern = f"%{_escape_like(term.lower())}%"

    with get_session(engine) as session:
        sent_to = select(FriendRequest.recipient_id).where(FriendRequest.sender_id == user_id)
        received_from = select(FriendRequest.sender_id).where(
            FriendRequest.recipient_id == user_id
        )
        candidates = session.scalars(
            select(User)
            .where(
                func.lower(User.username).like(pattern, escape="\\"),
                User.id != user_id,
                User.network_id != network_id,
                User.id.not_in(sent_to),
                User.id.not_in(received_from),
            )
            .order_by(func.lower(User.username), User.id)
            .limit(limit)
        ).all()

        # Badges are relative to each candidate's own network.
        badge_cache: dict[str, dict] = {}
        results = []
        for candidate in candidates:
            if candidate.badges_visible_in_search and candidate.network_id not in badge_cache:
                snapshots = load_member_snapshots(session, candidate.network_id)
                referrers = load_referrer_ids(session, [s.user_id for s in snapshots])
                badge_cache[candidate.network_id] = compute_badges(snapshots, referrers)
            network_badges = badge_cache.get(candidate.network_id, {})
            shown = badges_for_search(
                candidate.badges_visible_in_search, network_badges.get(candidate.id)
            )
            results.append({**_public_user(candidate), **shown.to_dict()})
        return results


# ---------------------------------------------------------------------------
# Friend-request handshake
# ---------------------------------------------------------------------------
def send_friend_request(engine: Engine, sender_id: int, target_id: int) -> dict[str, Any]:
    """Create a pending request from *sender_id* to *target_id*.

    The duplicate check and the insert are not serialized; two concurrent
    requests for the same pair can both succeed.
    """
    if sender_id == target_id:
        raise ValidationError("You cannot send a request to yourself.", code="self_request")

    with get_session(engine) as session:
        sender = session.get(User, sender_id)
        target = session.get(User, target_id)
        if sender is None or target is None:
            raise NotFoundError("User not found.")
        if sender.network_id == target.network_id:
            raise ConflictError("You are already in the same network.", code="same_network")

        existing = session.scalar(
            select(FriendRequest.id).where(
                or_(
                    and_(FriendRequest.sender_id == sender_id,
                         FriendRequest.recipient_id == target_id),
                    and_(FriendRequest.sender_id == target_id,
                         FriendRequest.recipient_id == sender_id),
                )
            ).limit(1)
        )
        if existing is not None:
            raise ConflictError("A pending request already exists.", code="request_exists")

        request = FriendRequest(sender_id=sender_id, recipient_id=target_id)
        session.add(request)
        session.flush()

        result = {
            "id": request.id,
            "senderId": str(sender_id),
            "status": request.status,
            "createdAt": _iso(request.created_at),
            "recipient": _public_user(target),
        }

    logger.info("Friend request %s: %s -> %s", result["id"], sender_id, target_id)
    return result


def accept_friend_request(engine: Engine, request_id: int, recipient_id: int) -> AcceptResult:
    """Accept a pending request addressed to *recipient_id*.

    The request row is removed in the same transaction as the merge, so a
    failed merge leaves the request pending.
    """
    from huddle.services.merge_service import merge_networks

    with get_session(engine) as session:
        request = session.scalar(
            select(FriendRequest).where(
                FriendRequest.id == request_id,
                FriendRequest.recipient_id == recipient_id,
                FriendRequest.status == "pending",
            )
        )
        if request is None:
            raise NotFoundError("Friend request not found.")

        sender = session.get(User, request.sender_id)
        recipient = session.get(User, recipient_id)
        if sender is None or recipient is None:
            raise NotFoundError("User not found.")

        sender_id = sender.id
        sender_network = sender.network_id
        recipient_network = recipient.network_id
        session.delete(request)

        if sender_network == recipient_network:
            return AcceptResult(network_id=recipient_network, joined_user_id=sender_id)

        sender_size = len(member_ids_in(session, sender_network))
        recipient_size = len(member_ids_in(session, recipient_network))
        # Ties favour the recipient's network.
        if sender_size > recipient_size:
            target, source = sender_network, recipient_network
        else:
            target, source = recipient_network, sender_network

        merge_networks(session, source, target)

    with get_session(engine) as session:
        remove_internal_requests(session, target)

    return AcceptResult(network_id=target, joined_user_id=sender_id, merged_from=source)


def delete_friend_request(engine: Engine, request_id: int, user_id: int) -> int | None:
    """Cancel or decline a request.  Returns the counterpart's id."""
    with get_session(engine) as session:
        request = session.scalar(
            select(FriendRequest).where(
                FriendRequest.id == request_id,
                or_(FriendRequest.sender_id == user_id, FriendRequest.recipient_id == user_id),
            )
        )
        if request is None:
            return None
        other = request.recipient_id if request.sender_id == user_id else request.sender_id
        session.delete(request)
    return other


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------
def ensure_user(engine: Engine, user_id: int, username: str, avatar: str | None) -> dict[str, Any]:
    """Login upsert.  First login places the user in a fresh network."""
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            network = create_isolated_network(session)
            user = User(id=user_id, username=username, avatar=avatar, network_id=network.id)
            session.add(user)
            session.flush()
            logger.info("New user %s (%s) in network %s", user_id, username, network.id)
        else:
            user.username = username
            user.avatar = avatar
            user.last_active = _utcnow()
            # Self-heal a dangling reference.
            ensure_network(session, user.network_id)
        return {
            "id": user.id,
            "username": user.username,
            "avatar": user.avatar,
            "network_id": user.network_id,
            "token_version": user.token_version,
        }


def get_user(engine: Engine, user_id: int) -> dict[str, Any] | None:
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            return None
        return {
            "id": user.id,
            "username": user.username,
            "avatar": user.avatar,
            "xp_total": user.xp_total,
            "network_id": user.network_id,
            "token_version": user.token_version,
            "badges_visible_in_search": bool(user.badges_visible_in_search),
        }


def touch_user_activity(engine: Engine, user_id: int) -> None:
    with get_session(engine) as session:
        session.execute(update(User).where(User.id == user_id).values(last_active=_utcnow()))


def set_badge_visibility(engine: Engine, user_id: int, visible: bool) -> bool | None:
    """Returns the stored flag, or ``None`` for an unknown user."""
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            return None
        user.badges_visible_in_search = bool(visible)
        return user.badges_visible_in_search


@dataclass(frozen=True, slots=True)
class PurgedUser:
    """What a deleted account leaves behind for the caller to publish."""

    user_id: int
    network_id: str
    counterpart_ids: tuple[int, ...] = ()


def pending_counterparts(session: Session, user_id: int) -> list[int]:
    """Users on the other end of *user_id*'s pending requests."""
    rows = session.execute(
        select(FriendRequest.sender_id, FriendRequest.recipient_id).where(
            or_(FriendRequest.sender_id == user_id, FriendRequest.recipient_id == user_id)
        )
    ).all()
    others = (
        recipient if sender == user_id else sender for sender, recipient in rows
    )
    return sorted(set(others))


def purge_user(session: Session, user_id: int) -> PurgedUser | None:
    """Delete a user and everything they own.

    Referral rows naming the user as referrer are kept with a NULL referrer
    so the referred account can never be credited again.
    """
    network_id = session.scalar(select(User.network_id).where(User.id == user_id))
    if network_id is None:
        return None
    counterparts = pending_counterparts(session, user_id)
    clear_user_friend_requests(session, user_id)
    session.execute(delete(Notification).where(Notification.user_id == user_id))
    session.execute(delete(XpEvent).where(XpEvent.user_id == user_id))
    session.execute(
        update(Referral).where(Referral.referrer_id == user_id).values(referrer_id=None)
    )
    session.execute(
        update(Player).where(Player.created_by == user_id).values(created_by=None)
    )
    session.execute(
        update(Match).where(Match.created_by == user_id).values(created_by=None)
    )
    session.execute(delete(User).where(User.id == user_id))
    delete_network_if_empty(session, network_id)
    return PurgedUser(user_id, network_id, tuple(counterparts))


def remove_user(engine: Engine, user_id: int) -> PurgedUser | None:
    """Account deletion.  Returns what the caller should publish, if anything."""
    with get_session(engine) as session:
        purged = purge_user(session, user_id)
    if purged is not None:
        logger.info("User %s deleted their account (network %s)", user_id, purged.network_id)
    return purged
