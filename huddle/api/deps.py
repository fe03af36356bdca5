"""
huddle.api.deps — FastAPI dependency injection
================================================

Authentication accepts either an ``Authorization: Bearer`` header or the
auth cookie.  A token is honoured only while its ``tv`` claim matches the
user's stored ``token_version``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Annotated, Any

import jwt
from fastapi import Depends, Header, HTTPException, Request, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from huddle.config import HuddleConfig, load_config
from huddle.database.engine import create_db_engine
from huddle.services import network_service
from huddle.services.realtime_service import RealtimeHub

_WEAK_SECRETS = frozenset({
    "huddle-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> HuddleConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_hub() -> RealtimeHub:
    """Process-wide fan-out hub; members are resolved against the live DB."""
    return RealtimeHub(member_resolver=lambda nid: network_service.list_member_ids(get_engine(), nid))


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AuthUser:
    """The authenticated caller, re-read from the DB on every request."""

    id: int
    username: str
    avatar: str | None
    xp_total: int
    network_id: str
    badges_visible_in_search: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "username": self.username,
            "avatar": self.avatar,
            "xp_total": self.xp_total,
            "networkId": self.network_id,
            "badgesVisibleInSearch": self.badges_visible_in_search,
        }


def issue_token(user_id: int, username: str, token_version: int, ttl_seconds: int) -> str:
    payload = {
        "sub": str(user_id),
        "username": username,
        "tv": token_version,
        "exp": datetime.now(UTC) + timedelta(seconds=ttl_seconds),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def resolve_token_user(engine: Engine, token: str | None) -> AuthUser | None:
    """Decode *token* and load its user; ``None`` for anything invalid."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        user_id = int(payload["sub"])
    except (InvalidTokenError, KeyError, TypeError, ValueError):
        return None

    user = network_service.get_user(engine, user_id)
    if user is None or user["token_version"] != payload.get("tv"):
        return None
    return AuthUser(
        id=user["id"],
        username=user["username"],
        avatar=user["avatar"],
        xp_total=user["xp_total"],
        network_id=user["network_id"],
        badges_visible_in_search=user["badges_visible_in_search"],
    )


def _bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme != "Bearer" or not token:
        return None
    return token


def get_current_user(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
    cfg: HuddleConfig = Depends(get_config),
) -> AuthUser:
    """Validate the caller's token and touch ``last_active``.  401 otherwise."""
    token = _bearer(authorization) or request.cookies.get(cfg.cookie_name)
    if not token:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    user = resolve_token_user(engine, token)
    if user is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    network_service.touch_user_activity(engine, user.id)
    return user
