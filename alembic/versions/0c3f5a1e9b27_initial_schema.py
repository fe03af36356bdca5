"""Initial schema: networks, users, friend requests, XP ledger, referrals,
notifications, players, matches, map preferences, oauth states

Revision ID: 0c3f5a1e9b27
Revises:
Create Date: 2026-10-17 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0c3f5a1e9b27"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "networks",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("avatar", sa.String(100), nullable=True),
        sa.Column("network_id", sa.String(64), sa.ForeignKey("networks.id"), nullable=False),
        sa.Column("network_joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("xp_total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("token_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("badges_visible_in_search", sa.Boolean(), server_default=sa.false()),
        sa.Column("last_active", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_network_id", "users", ["network_id"])
    op.create_index("ix_users_last_active", "users", ["last_active"])

    op.create_table(
        "friend_requests",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("sender_id", sa.BigInteger(),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("recipient_id", sa.BigInteger(),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_friend_requests_sender", "friend_requests", ["sender_id"])
    op.create_index("ix_friend_requests_recipient", "friend_requests", ["recipient_id"])

    op.create_table(
        "xp_events",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("user_id", sa.BigInteger(),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("context", sa.String(200), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "type", "context", name="uq_xp_events_user_type_context"),
    )
    op.create_index("ix_xp_events_user_time", "xp_events", ["user_id", "created_at"])

    op.create_table(
        "referrals",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("referrer_id", sa.BigInteger(),
                  sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("referred_id", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("referred_id", name="uq_referrals_referred"),
    )
    op.create_index("ix_referrals_referrer", "referrals", ["referrer_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("user_id", sa.BigInteger(),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("data", postgresql.JSONB(), nullable=True),
        sa.Column("is_read", sa.Boolean(), server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_notifications_user_time", "notifications", ["user_id", "created_at"])

    op.create_table(
        "players",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("network_id", sa.String(64),
                  sa.ForeignKey("networks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_by", sa.BigInteger(),
                  sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("skill", sa.Integer(), nullable=False, server_default="5"),
    )
    op.create_index("ix_players_network_id", "players", ["network_id"])

    op.create_table(
        "matches",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("network_id", sa.String(64),
                  sa.ForeignKey("networks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_by", sa.BigInteger(),
                  sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("team_a", postgresql.JSONB(), nullable=True),
        sa.Column("team_b", postgresql.JSONB(), nullable=True),
        sa.Column("team_a_score", sa.Integer(), server_default="0"),
        sa.Column("team_b_score", sa.Integer(), server_default="0"),
        sa.Column("winner", sa.String(10), server_default="unknown"),
        sa.Column("game", sa.String(50), nullable=True),
        sa.Column("map_name", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_matches_network_time", "matches", ["network_id", "created_at"])

    op.create_table(
        "map_preferences",
        sa.Column("network_id", sa.String(64),
                  sa.ForeignKey("networks.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("preferences", postgresql.JSONB(), nullable=False,
                  server_default=sa.text("'{}'::jsonb")),
    )

    op.create_table(
        "oauth_states",
        sa.Column("state", sa.String(128), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_index("ix_oauth_states_created_at", "oauth_states", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_oauth_states_created_at", table_name="oauth_states")
    op.drop_table("oauth_states")
    op.drop_table("map_preferences")
    op.drop_index("ix_matches_network_time", table_name="matches")
    op.drop_table("matches")
    op.drop_index("ix_players_network_id", table_name="players")
    op.drop_table("players")
    op.drop_index("ix_notifications_user_time", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_referrals_referrer", table_name="referrals")
    op.drop_table("referrals")
    op.drop_index("ix_xp_events_user_time", table_name="xp_events")
    op.drop_table("xp_events")
    op.drop_index("ix_friend_requests_recipient", table_name="friend_requests")
    op.drop_index("ix_friend_requests_sender", table_name="friend_requests")
    op.drop_table("friend_requests")
    op.drop_index("ix_users_last_active", table_name="users")
    op.drop_index("ix_users_network_id", table_name="users")
    op.drop_table("users")
    op.drop_table("networks")
