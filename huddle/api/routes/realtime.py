"""
huddle.api.routes.realtime — Live-push WebSocket endpoint
===========================================================

The socket is server → client only.  The auth cookie is checked before the
handshake is accepted; a bad or missing token closes with 1008.  Anything
the client sends is read and ignored so disconnects are noticed promptly.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from huddle.api.deps import get_config, get_engine, get_hub, resolve_token_user
from huddle.config import HuddleConfig
from huddle.constants import FRAME_CONNECTION_ACK, WS_UNAUTHORIZED
from huddle.database.engine import run_db
from huddle.services.realtime_service import RealtimeHub

router = APIRouter(tags=["realtime"])
logger = logging.getLogger(__name__)


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    engine=Depends(get_engine),
    cfg: HuddleConfig = Depends(get_config),
    hub: RealtimeHub = Depends(get_hub),
):
    user = await run_db(resolve_token_user, engine, websocket.cookies.get(cfg.cookie_name))
    if user is None:
        await websocket.close(code=WS_UNAUTHORIZED, reason="Unauthorized")
        return

    await websocket.accept()
    hub.attach(user.id, websocket)
    try:
        await websocket.send_json({"type": FRAME_CONNECTION_ACK})
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Socket closed by user %s", user.id)
    finally:
        hub.detach(user.id, websocket)
