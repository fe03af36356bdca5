"""
huddle.api.routes.user — Current user, badge visibility, account deletion
===========================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from huddle.api.auth import clear_auth_cookie
from huddle.api.deps import AuthUser, get_config, get_current_user, get_engine, get_hub
from huddle.config import HuddleConfig
from huddle.constants import SCOPE_NETWORK
from huddle.errors import NotFoundError
from huddle.services import network_service
from huddle.services.realtime_service import RealtimeHub

router = APIRouter(prefix="/user", tags=["user"])


class BadgeVisibility(BaseModel):
    visible: bool


@router.get("")
def current_user(user: AuthUser = Depends(get_current_user)):
    return user.to_dict()


@router.patch("/badges")
def update_badges(
    body: BadgeVisibility,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    visible = network_service.set_badge_visibility(engine, user.id, body.visible)
    if visible is None:
        raise NotFoundError("User not found.")
    return {"badgesVisibleInSearch": visible}


@router.delete("")
def delete_account(
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: HuddleConfig = Depends(get_config),
    hub: RealtimeHub = Depends(get_hub),
):
    purged = network_service.remove_user(engine, user.id)
    if purged is not None:
        hub.emit_network_sync(
            purged.network_id, SCOPE_NETWORK, {"reason": "deleted", "userId": str(user.id)}
        )
        if purged.counterpart_ids:
            hub.emit_social_update(purged.counterpart_ids)
    response = JSONResponse({"message": "Account deleted"})
    clear_auth_cookie(response, cfg)
    return response
