"""
huddle.api.routes.map_preferences — Per-network map bans
==========================================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from huddle.api.deps import AuthUser, get_current_user, get_engine, get_hub
from huddle.constants import SCOPE_NETWORK
from huddle.services import map_preference_service
from huddle.services.realtime_service import RealtimeHub

router = APIRouter(prefix="/map-preferences", tags=["map-preferences"])


@router.get("")
def get_preferences(
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return map_preference_service.get_map_preferences(engine, user.network_id)


@router.put("")
def save_preferences(
    body: dict[str, Any] = Body(default_factory=dict),
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
    hub: RealtimeHub = Depends(get_hub),
):
    saved = map_preference_service.save_map_preferences(engine, user.network_id, body)
    hub.emit_network_sync(user.network_id, SCOPE_NETWORK, {"reason": "map_preferences"})
    return saved
