"""
huddle.api.routes.notifications — Recipient-owned notifications
=================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from huddle.api.deps import AuthUser, get_current_user, get_engine, get_hub
from huddle.errors import NotFoundError
from huddle.services import notification_service
from huddle.services.realtime_service import RealtimeHub

router = APIRouter(prefix="/notifications", tags=["notifications"])


class ReadFlag(BaseModel):
    read: bool = True


@router.get("")
def list_notifications(
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return notification_service.list_notifications(engine, user.id)


@router.patch("/{notification_id}/read")
def mark_read(
    notification_id: int,
    body: ReadFlag | None = None,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
    hub: RealtimeHub = Depends(get_hub),
):
    is_read = body.read if body is not None else True
    if not notification_service.mark_notification_read(engine, user.id, notification_id, is_read, hub):
        raise NotFoundError("Notification not found.")
    return {"ok": True}


@router.delete("/{notification_id}", status_code=204)
def delete_notification(
    notification_id: int,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
    hub: RealtimeHub = Depends(get_hub),
):
    if not notification_service.delete_notification(engine, user.id, notification_id, hub):
        raise NotFoundError("Notification not found.")
    return Response(status_code=204)
