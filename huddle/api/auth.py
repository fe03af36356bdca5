"""
huddle.api.auth — Discord OAuth2 login + JWT cookie
=====================================================

``/auth/login`` redirects to Discord; ``/auth/callback`` exchanges the code,
upserts the user (first login creates their own network) and sets the
JWT as an HttpOnly cookie before redirecting to the frontend.
"""

from __future__ import annotations

import logging
import os
import secrets
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy import delete

from huddle.api.deps import get_config, get_engine, issue_token
from huddle.config import HuddleConfig
from huddle.database.engine import get_session, run_db
from huddle.database.models import OAuthState
from huddle.services.network_service import ensure_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

DISCORD_API = "https://discord.com/api/v10"
OAUTH_SCOPE = "identify"
OAUTH_STATE_TTL_SECONDS = 600


def _oauth_env() -> tuple[str, str, str, str]:
    """Return required OAuth env vars or raise a clear 500."""
    client_id = os.getenv("DISCORD_CLIENT_ID", "").strip()
    client_secret = os.getenv("DISCORD_CLIENT_SECRET", "").strip()
    redirect_uri = os.getenv("DISCORD_REDIRECT_URI", "").strip()
    frontend_url = os.getenv("FRONTEND_URL", "").strip()

    missing = [
        name for name, value in (
            ("DISCORD_CLIENT_ID", client_id),
            ("DISCORD_CLIENT_SECRET", client_secret),
            ("DISCORD_REDIRECT_URI", redirect_uri),
            ("FRONTEND_URL", frontend_url),
        )
        if not value
    ]
    if missing:
        raise HTTPException(
            status_code=500,
            detail="Discord OAuth is not configured: missing " + ", ".join(missing),
        )
    return client_id, client_secret, redirect_uri, frontend_url


def _store_oauth_state(engine, state: str) -> None:
    """Persist an OAuth state token and prune stale entries."""
    cutoff = datetime.now(UTC) - timedelta(seconds=OAUTH_STATE_TTL_SECONDS)
    with get_session(engine) as session:
        session.execute(delete(OAuthState).where(OAuthState.created_at < cutoff))
        session.add(OAuthState(state=state))


def _consume_oauth_state(engine, state: str) -> bool:
    """Consume a one-time OAuth state token if valid and unexpired."""
    cutoff = datetime.now(UTC) - timedelta(seconds=OAUTH_STATE_TTL_SECONDS)
    with get_session(engine) as session:
        session.execute(delete(OAuthState).where(OAuthState.created_at < cutoff))
        row = session.get(OAuthState, state)
        if row is None:
            return False
        session.delete(row)
        return True


def set_auth_cookie(response, token: str, cfg: HuddleConfig) -> None:
    response.set_cookie(
        cfg.cookie_name,
        token,
        max_age=cfg.cookie_max_age_seconds,
        httponly=True,
        secure=cfg.cookie_secure,
        samesite="lax",
        domain=cfg.cookie_domain,
    )


def clear_auth_cookie(response, cfg: HuddleConfig) -> None:
    response.delete_cookie(
        cfg.cookie_name,
        httponly=True,
        secure=cfg.cookie_secure,
        samesite="lax",
        domain=cfg.cookie_domain,
    )


@router.get("/login")
async def login(engine=Depends(get_engine)):
    """Redirect to the Discord OAuth2 consent screen."""
    client_id, _, redirect_uri, _ = _oauth_env()

    state = secrets.token_urlsafe(32)
    await run_db(_store_oauth_state, engine, state)

    query = urlencode({
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": OAUTH_SCOPE,
        "state": state,
    })
    return RedirectResponse(f"https://discord.com/oauth2/authorize?{query}")


async def _fetch_discord_profile(
    code: str, client_id: str, client_secret: str, redirect_uri: str
) -> dict:
    """Trade the authorization code for the caller's Discord profile."""
    transport = httpx.AsyncHTTPTransport(retries=1)
    async with httpx.AsyncClient(timeout=10, transport=transport) as client:
        token_resp = await client.post(
            f"{DISCORD_API}/oauth2/token",
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": client_id,
                "client_secret": client_secret,
                "scope": OAUTH_SCOPE,
            },
        )
        if token_resp.status_code != 200:
            raise HTTPException(400, "OAuth token exchange failed")
        access_token = token_resp.json().get("access_token")
        if not access_token:
            raise HTTPException(400, "No access token returned")

        profile_resp = await client.get(
            f"{DISCORD_API}/users/@me",
            headers={"Authorization": f"Bearer {access_token}"},
        )
    if profile_resp.status_code != 200:
        raise HTTPException(400, "Failed to fetch Discord user")
    return profile_resp.json()


@router.get("/callback")
async def callback(
    code: str,
    state: str,
    cfg: HuddleConfig = Depends(get_config),
    engine=Depends(get_engine),
):
    """Exchange the OAuth code, upsert the user and set the JWT cookie."""
    client_id, client_secret, redirect_uri, frontend_url = _oauth_env()

    if not await run_db(_consume_oauth_state, engine, state):
        raise HTTPException(400, "Invalid or expired OAuth state")

    profile = await _fetch_discord_profile(code, client_id, client_secret, redirect_uri)
    stored = await run_db(
        ensure_user,
        engine,
        int(profile["id"]),
        profile.get("global_name") or profile.get("username", "Unknown"),
        profile.get("avatar"),
    )
    token = issue_token(
        stored["id"], stored["username"], stored["token_version"], cfg.cookie_max_age_seconds
    )
    logger.info("User %s logged in (network %s)", stored["id"], stored["network_id"])

    response = RedirectResponse(frontend_url)
    set_auth_cookie(response, token, cfg)
    return response


@router.post("/logout")
def logout(cfg: HuddleConfig = Depends(get_config)):
    response = JSONResponse({"message": "Logged out"})
    clear_auth_cookie(response, cfg)
    return response
