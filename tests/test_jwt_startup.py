"""
tests/test_jwt_startup — JWT Secret Validation at Startup
===========================================================
The API must refuse to start when JWT_SECRET is missing, blank, too short,
or a known weak default.
"""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from huddle.api import deps


class TestJWTSecretValidation:
    """Prove that _load_jwt_secret() rejects bad secrets and accepts good ones."""

    def test_rejects_missing_secret(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("JWT_SECRET", None)
            with pytest.raises(RuntimeError, match="JWT_SECRET environment variable is not set"):
                deps._load_jwt_secret()

    def test_rejects_empty_secret(self):
        with patch.dict(os.environ, {"JWT_SECRET": ""}):
            with pytest.raises(RuntimeError, match="JWT_SECRET environment variable is not set"):
                deps._load_jwt_secret()

    def test_rejects_known_weak_default(self):
        with patch.dict(os.environ, {"JWT_SECRET": "huddle-dev-secret-change-me"}):
            with pytest.raises(RuntimeError, match="known weak default"):
                deps._load_jwt_secret()

    def test_rejects_short_secret(self):
        with patch.dict(os.environ, {"JWT_SECRET": "tooshort"}):
            with pytest.raises(RuntimeError, match="too short"):
                deps._load_jwt_secret()

    def test_accepts_strong_secret(self):
        good_secret = "a" * 64
        with patch.dict(os.environ, {"JWT_SECRET": good_secret}):
            assert deps._load_jwt_secret() == good_secret

    def test_rejects_change_me_variant(self):
        with patch.dict(os.environ, {"JWT_SECRET": "change-me"}):
            with pytest.raises(RuntimeError, match="known weak default"):
                deps._load_jwt_secret()


class TestTokens:
    def test_issued_token_round_trips(self, db_engine, make_user):
        make_user(5, username="Echo")
        token = deps.issue_token(5, "Echo", 0, 60)
        user = deps.resolve_token_user(db_engine, token)
        assert user is not None
        assert user.network_id == "net_5"

    def test_expired_token_rejected(self, db_engine, make_user):
        make_user(5)
        token = deps.issue_token(5, "user5", 0, -10)
        assert deps.resolve_token_user(db_engine, token) is None

    def test_foreign_signature_rejected(self, db_engine, make_user):
        import jwt

        make_user(5)
        token = jwt.encode({"sub": "5", "tv": 0}, "x" * 64, algorithm=deps.JWT_ALGORITHM)
        assert deps.resolve_token_user(db_engine, token) is None
