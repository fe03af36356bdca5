"""
huddle.api.routes.social — Network state, search, friend requests, leave & kick
=================================================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from huddle.api.deps import AuthUser, get_config, get_current_user, get_engine, get_hub
from huddle.config import HuddleConfig
from huddle.constants import (
    NOTIFY_NETWORK_JOINED,
    NOTIFY_REQUEST_ACCEPTED,
    NOTIFY_REQUEST_RECEIVED,
    SCOPE_MATCHES,
    SCOPE_NETWORK,
    SCOPE_PLAYERS,
)
from huddle.errors import NotFoundError, ValidationError
from huddle.services import merge_service, network_service
from huddle.services.notification_service import add_notification
from huddle.services.realtime_service import RealtimeHub

router = APIRouter(prefix="/social", tags=["social"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class UserTarget(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")


class LeaveConfirmation(BaseModel):
    confirm: str = ""


def _parse_user_id(raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError:
        raise ValidationError("Invalid user id.", code="invalid_user_id") from None


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
@router.get("/state")
def social_state(
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return network_service.get_network_state(engine, user.network_id, user.id)


@router.get("/search")
def search(
    q: str = "",
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: HuddleConfig = Depends(get_config),
):
    if len(q.strip()) < cfg.search_min_length:
        return []
    return network_service.search_candidates(
        engine, q, user.id, user.network_id, limit=cfg.search_limit
    )


# ---------------------------------------------------------------------------
# Friend requests
# ---------------------------------------------------------------------------
@router.post("/requests", status_code=201)
def create_request(
    body: UserTarget,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
    hub: RealtimeHub = Depends(get_hub),
):
    target_id = _parse_user_id(body.user_id)
    request = network_service.send_friend_request(engine, user.id, target_id)
    add_notification(
        engine,
        target_id,
        NOTIFY_REQUEST_RECEIVED,
        data={"requestId": request["id"], "fromUserId": str(user.id), "username": user.username},
        hub=hub,
    )
    hub.emit_social_update([user.id, target_id])
    return {"state": network_service.get_network_state(engine, user.network_id, user.id)}


@router.post("/requests/{request_id}/accept")
def accept_request(
    request_id: int,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
    hub: RealtimeHub = Depends(get_hub),
):
    result = network_service.accept_friend_request(engine, request_id, user.id)
    state = network_service.get_network_state(engine, result.network_id, user.id)
    member_ids = [int(m["id"]) for m in state["members"]]

    add_notification(
        engine,
        result.joined_user_id,
        NOTIFY_REQUEST_ACCEPTED,
        data={"userId": str(user.id), "username": user.username, "networkId": result.network_id},
        hub=hub,
    )
    if result.merged_from:
        others = [m for m in member_ids if m not in (user.id, result.joined_user_id)]
        if others:
            add_notification(
                engine,
                others,
                NOTIFY_NETWORK_JOINED,
                data={"networkId": result.network_id, "mergedFrom": result.merged_from},
                hub=hub,
            )
        meta = {"reason": "merged", "mergedFrom": result.merged_from}
        for scope in (SCOPE_NETWORK, SCOPE_PLAYERS, SCOPE_MATCHES):
            hub.emit_network_sync(result.network_id, scope, meta)
    hub.emit_social_update(member_ids)
    return {"state": state, "result": result.to_dict()}


@router.delete("/requests/{request_id}")
def remove_request(
    request_id: int,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
    hub: RealtimeHub = Depends(get_hub),
):
    other_id = network_service.delete_friend_request(engine, request_id, user.id)
    if other_id is None:
        raise NotFoundError("Friend request not found.")
    hub.emit_social_update([user.id, other_id])
    return {"state": network_service.get_network_state(engine, user.network_id, user.id)}


# ---------------------------------------------------------------------------
# Leave / kick
# ---------------------------------------------------------------------------
@router.post("/leave")
def leave(
    body: LeaveConfirmation,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
    hub: RealtimeHub = Depends(get_hub),
):
    if body.confirm.strip().lower() != "leave":
        raise ValidationError("Confirmation required.", code="confirmation_required")
    result = merge_service.leave_network(engine, user.id, hub)
    return {"state": network_service.get_network_state(engine, result.new_network_id, user.id)}


@router.post("/kick")
def kick_member(
    body: UserTarget,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
    hub: RealtimeHub = Depends(get_hub),
):
    target_id = _parse_user_id(body.user_id)
    merge_service.kick(engine, target_id, user.id, hub)
    return {"state": network_service.get_network_state(engine, user.network_id, user.id)}
