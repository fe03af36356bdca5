"""
tests/test_merge_service.py — Network Merge & Split Engine Tests
==================================================================
Merge re-parenting, atomic rollback, leave/kick splits and their pushes.

Uses an in-memory SQLite database via the shared conftest fixtures.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from huddle.constants import NOTIFY_NETWORK_KICKED, NOTIFY_NETWORK_LEFT
from huddle.database.models import (
    FriendRequest,
    MapPreference,
    Match,
    Network,
    Notification,
    Player,
    User,
)
from huddle.errors import AuthorizationError, NotFoundError, ValidationError
from huddle.services import merge_service, network_service
from huddle.services.map_preference_service import union_bans


def _seed_rosters(engine) -> None:
    with Session(engine) as session:
        session.add_all([
            Player(id=1, network_id="net_a", name="Ace"),
            Player(id=2, network_id="net_b", name="Bee"),
            Match(id=1, network_id="net_b", game="cs2"),
            MapPreference(network_id="net_a", preferences={"banned": {"cs2": ["nuke"]}}),
            MapPreference(
                network_id="net_b",
                preferences={"banned": {"cs2": ["nuke", "vertigo"], "valorant": ["icebox"]}},
            ),
        ])
        session.commit()


class TestMerge:
    def test_scenario_two_plus_one(self, db_engine, make_user):
        """A = [u1, u2], B = [u3]; u1 -> u3, u3 accepts -> target A."""
        make_user(1, network_id="net_a", joined_offset=0)
        make_user(2, network_id="net_a", joined_offset=1)
        make_user(3, network_id="net_b", joined_offset=2)
        _seed_rosters(db_engine)
        request = network_service.send_friend_request(db_engine, 1, 3)

        result = network_service.accept_friend_request(db_engine, request["id"], 3)

        assert result.network_id == "net_a"
        with Session(db_engine) as session:
            assert session.get(Network, "net_b") is None
            assert session.scalar(
                select(func.count()).select_from(User).where(User.network_id == "net_a")
            ) == 3
            assert set(session.scalars(select(Player.network_id)).all()) == {"net_a"}
            assert session.get(Match, 1).network_id == "net_a"
            assert session.get(MapPreference, "net_b") is None
            assert session.get(MapPreference, "net_a").preferences == {
                "banned": {"cs2": ["nuke", "vertigo"], "valorant": ["icebox"]}
            }

    def test_moved_members_are_restamped(self, db_engine, make_user):
        make_user(1, network_id="net_a", joined_offset=0)
        make_user(2, network_id="net_a", joined_offset=1)
        make_user(3, network_id="net_b", joined_offset=-100)
        request = network_service.send_friend_request(db_engine, 1, 3)
        network_service.accept_friend_request(db_engine, request["id"], 3)

        state = network_service.get_network_state(db_engine, "net_a", 1)
        og = [m["id"] for m in state["members"] if m["og"]]
        # u3 joined its old network first but is the newest member of net_a.
        assert og == ["1"]

    def test_failure_rolls_back_everything(self, db_engine, make_user):
        make_user(1, network_id="net_a")
        make_user(2, network_id="net_b")
        _seed_rosters(db_engine)
        request = network_service.send_friend_request(db_engine, 1, 2)

        with patch.object(
            merge_service.NetworkMerge, "_reparent_users", side_effect=RuntimeError("boom")
        ):
            with pytest.raises(RuntimeError, match="boom"):
                network_service.accept_friend_request(db_engine, request["id"], 2)

        with Session(db_engine) as session:
            assert session.get(Network, "net_a") is not None
            assert session.get(User, 1).network_id == "net_a"
            assert session.get(Player, 1).network_id == "net_a"
            assert session.get(MapPreference, "net_a") is not None
            assert session.get(FriendRequest, request["id"]) is not None

    def test_merge_same_network_is_noop(self, db_session):
        assert merge_service.merge_networks(db_session, "net_x", "net_x") is None

    def test_union_bans_dedupes(self):
        merged = union_bans(
            {"banned": {"cs2": ["a", "b"]}},
            {"banned": {"cs2": ["b", "c", ""], "dota": ["x"]}},
        )
        assert merged == {"banned": {"cs2": ["a", "b", "c"], "dota": ["x"]}}


class TestLeave:
    def test_leaving_network_of_three(self, db_engine, make_user):
        make_user(1, network_id="net_a", joined_offset=0)
        make_user(2, network_id="net_a", joined_offset=1)
        make_user(3, network_id="net_a", joined_offset=2)
        make_user(9, network_id="net_z")
        network_service.send_friend_request(db_engine, 9, 2)
        hub = MagicMock()

        result = merge_service.leave_network(db_engine, 2, hub)

        assert result.old_network_id == "net_a"
        assert not result.old_network_deleted
        assert network_service.list_member_ids(db_engine, result.new_network_id) == [2]
        assert network_service.list_member_ids(db_engine, "net_a") == [1, 3]
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(FriendRequest)) == 0
            notified = session.scalars(
                select(Notification.user_id).where(Notification.type == NOTIFY_NETWORK_LEFT)
            ).all()
        assert sorted(notified) == [1, 3]
        hub.emit_social_update.assert_any_call((1, 3))
        hub.emit_social_update.assert_any_call(2)
        hub.emit_notifications_update.assert_called_once_with((1, 3))

    def test_last_member_leaving_deletes_network(self, db_engine, make_user):
        make_user(1, network_id="net_a")
        with Session(db_engine) as session:
            session.add(Player(network_id="net_a", name="Solo"))
            session.commit()

        result = merge_service.leave_network(db_engine, 1)

        assert result.old_network_deleted
        with Session(db_engine) as session:
            assert session.get(Network, "net_a") is None
            assert session.scalar(select(func.count()).select_from(Player)) == 0

    def test_unknown_user(self, db_engine):
        with pytest.raises(NotFoundError):
            merge_service.leave_network(db_engine, 404)


class TestKick:
    @pytest.fixture
    def trio(self, make_user):
        make_user(1, network_id="net_a", joined_offset=0)
        make_user(2, network_id="net_a", joined_offset=1)
        make_user(3, network_id="net_a", joined_offset=2)

    def test_og_member_kicks_newcomer(self, db_engine, trio):
        hub = MagicMock()
        result = merge_service.kick(db_engine, 3, 1, hub)

        assert network_service.list_member_ids(db_engine, "net_a") == [1, 2]
        assert network_service.list_member_ids(db_engine, result.new_network_id) == [3]
        with Session(db_engine) as session:
            note = session.scalar(select(Notification).where(Notification.user_id == 3))
        assert note.type == NOTIFY_NETWORK_KICKED
        assert note.data["byUserId"] == "1"
        hub.emit_notifications_update.assert_called_once_with(3)

    def test_cannot_kick_self(self, db_engine, trio):
        with pytest.raises(ValidationError):
            merge_service.kick(db_engine, 1, 1)

    def test_non_og_cannot_kick(self, db_engine, trio):
        with pytest.raises(AuthorizationError):
            merge_service.kick(db_engine, 3, 2)

    def test_og_cannot_be_kicked(self, db_engine, make_user):
        for uid in range(1, 6):
            make_user(uid, network_id="net_a", joined_offset=uid)
        # Five members -> two OG (users 1 and 2).
        with pytest.raises(AuthorizationError):
            merge_service.kick(db_engine, 2, 1)

    def test_target_outside_network(self, db_engine, trio, make_user):
        make_user(7, network_id="net_b")
        with pytest.raises(NotFoundError):
            merge_service.kick(db_engine, 7, 1)
        assert network_service.list_member_ids(db_engine, "net_b") == [7]
