"""
huddle.database.models — SQLAlchemy 2.0 Data Models
====================================================

Tables:
- networks          — Social clusters (identity only)
- users             — Discord members; each belongs to exactly one network
- friend_requests   — Pending handshakes between users of different networks
- xp_events         — Append-only XP ledger with idempotent (user, type, context) key
- referrals         — Who invited whom; a referred user is credited once
- notifications     — Persisted per-recipient notifications
- players           — Network roster entries (re-parented on merge)
- matches           — Network match history (re-parented on merge)
- map_preferences   — Per-network map ban lists (union-merged on merge)
- oauth_states      — One-time OAuth CSRF tokens
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(UTC)


def new_network_id() -> str:
    return f"net_{uuid.uuid4().hex}"


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Huddle ORM models."""


# ---------------------------------------------------------------------------
# Networks — exist iff at least one user references them
# ---------------------------------------------------------------------------
class Network(Base):
    __tablename__ = "networks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_network_id)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Network id={self.id}>"


# ---------------------------------------------------------------------------
# Users — one row per Discord account
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    avatar: Mapped[str | None] = mapped_column(String(100), default=None)
    network_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("networks.id"), nullable=False
    )
    # Millisecond ordering matters for OG eligibility, so stamp in Python.
    network_joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    xp_total: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    token_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    badges_visible_in_search: Mapped[bool] = mapped_column(Boolean, default=False)
    last_active: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    xp_events: Mapped[list[XpEvent]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_users_network_id", "network_id"),
        Index("ix_users_last_active", "last_active"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.username!r} net={self.network_id}>"


# ---------------------------------------------------------------------------
# FriendRequest — only pending rows are persisted
# ---------------------------------------------------------------------------
class FriendRequest(Base):
    __tablename__ = "friend_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sender_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    recipient_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    __table_args__ = (
        Index("ix_friend_requests_sender", "sender_id"),
        Index("ix_friend_requests_recipient", "recipient_id"),
    )

    def __repr__(self) -> str:
        return f"<FriendRequest id={self.id} {self.sender_id}->{self.recipient_id}>"


# ---------------------------------------------------------------------------
# XpEvent — append-only ledger; amount is the delta actually applied
# ---------------------------------------------------------------------------
class XpEvent(Base):
    __tablename__ = "xp_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    context: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="xp_events")

    __table_args__ = (
        UniqueConstraint("user_id", "type", "context", name="uq_xp_events_user_type_context"),
        Index("ix_xp_events_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<XpEvent id={self.id} user={self.user_id} type={self.type} amount={self.amount}>"


# ---------------------------------------------------------------------------
# Referral — a referred user may be credited to one referrer, ever
# ---------------------------------------------------------------------------
class Referral(Base):
    __tablename__ = "referrals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # NULL once the referrer account is deleted; the row still blocks a second credit.
    referrer_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    # No FK: the referred account may be purged later, the credit stays.
    referred_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("referred_id", name="uq_referrals_referred"),
        Index("ix_referrals_referrer", "referrer_id"),
    )

    def __repr__(self) -> str:
        return f"<Referral {self.referrer_id}->{self.referred_id}>"


# ---------------------------------------------------------------------------
# Notification — owned (and deletable) by the recipient only
# ---------------------------------------------------------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, default=None)
    data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    __table_args__ = (
        Index("ix_notifications_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user={self.user_id} type={self.type}>"


# ---------------------------------------------------------------------------
# Player / Match — network-scoped records (CRUD lives outside this package)
# ---------------------------------------------------------------------------
class Player(Base):
    __tablename__ = "players"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    network_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("networks.id", ondelete="CASCADE"), nullable=False
    )
    created_by: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    skill: Mapped[int] = mapped_column(Integer, nullable=False, default=5)

    __table_args__ = (
        Index("ix_players_network_id", "network_id"),
    )

    def __repr__(self) -> str:
        return f"<Player id={self.id} name={self.name!r} net={self.network_id}>"


class Match(Base):
    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    network_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("networks.id", ondelete="CASCADE"), nullable=False
    )
    created_by: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    team_a: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    team_b: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    team_a_score: Mapped[int] = mapped_column(Integer, default=0)
    team_b_score: Mapped[int] = mapped_column(Integer, default=0)
    winner: Mapped[str] = mapped_column(String(10), default="unknown")
    game: Mapped[str | None] = mapped_column(String(50), default=None)
    map_name: Mapped[str | None] = mapped_column(String(100), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_matches_network_time", "network_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Match id={self.id} net={self.network_id} winner={self.winner}>"


# ---------------------------------------------------------------------------
# MapPreference — {"banned": {game_key: [map, ...]}} per network
# ---------------------------------------------------------------------------
class MapPreference(Base):
    __tablename__ = "map_preferences"

    network_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("networks.id", ondelete="CASCADE"), primary_key=True
    )
    preferences: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<MapPreference net={self.network_id}>"


# ---------------------------------------------------------------------------
# OAuthState — one-time CSRF tokens for the Discord login round-trip
# ---------------------------------------------------------------------------
class OAuthState(Base):
    __tablename__ = "oauth_states"

    state: Mapped[str] = mapped_column(String(128), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("ix_oauth_states_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<OAuthState created={self.created_at}>"
