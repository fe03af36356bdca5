"""
huddle.services.notification_service — Persisted Notifications
================================================================

Rows are owned by their recipient: only the recipient may list, mark or
delete them.  Every write is followed by a ``sync``/``notifications`` push
to the affected users once the transaction has committed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC
from typing import TYPE_CHECKING, Any

from sqlalchemy import Engine, delete, select
from sqlalchemy.orm import Session

from huddle.database.engine import get_session
from huddle.database.models import Notification

if TYPE_CHECKING:
    from huddle.services.realtime_service import RealtimeHub

logger = logging.getLogger(__name__)

LIST_LIMIT = 50


def _to_dict(row: Notification) -> dict[str, Any]:
    created = row.created_at
    if created is not None and created.tzinfo is None:
        created = created.replace(tzinfo=UTC)
    return {
        "id": row.id,
        "type": row.type,
        "message": row.message,
        "data": row.data if isinstance(row.data, dict) else None,
        "isRead": bool(row.is_read),
        "createdAt": created.isoformat() if created else None,
    }


def stage_notification(
    session: Session,
    targets: int | Iterable[int],
    type_: str,
    *,
    message: str | None = None,
    data: dict[str, Any] | None = None,
) -> list[int]:
    """Add one row per target to *session*; the caller commits and pushes."""
    target_ids = [targets] if isinstance(targets, int) else list(dict.fromkeys(targets))
    for target in target_ids:
        session.add(Notification(user_id=target, type=type_, message=message, data=data or {}))
    return target_ids


def add_notification(
    engine: Engine,
    targets: int | Iterable[int],
    type_: str,
    *,
    message: str | None = None,
    data: dict[str, Any] | None = None,
    hub: RealtimeHub | None = None,
) -> list[int]:
    """Persist a notification for every target in a single transaction."""
    with get_session(engine) as session:
        target_ids = stage_notification(session, targets, type_, message=message, data=data)
    if target_ids and hub is not None:
        hub.emit_notifications_update(target_ids)
    return target_ids


def list_notifications(engine: Engine, user_id: int, limit: int = LIST_LIMIT) -> list[dict[str, Any]]:
    with get_session(engine) as session:
        rows = session.scalars(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        ).all()
        return [_to_dict(row) for row in rows]


def mark_notification_read(
    engine: Engine,
    user_id: int,
    notification_id: int,
    is_read: bool = True,
    hub: RealtimeHub | None = None,
) -> bool:
    with get_session(engine) as session:
        row = session.scalar(
            select(Notification).where(
                Notification.id == notification_id, Notification.user_id == user_id
            )
        )
        if row is None:
            return False
        row.is_read = is_read
    if hub is not None:
        hub.emit_notifications_update(user_id)
    return True


def delete_notification(
    engine: Engine, user_id: int, notification_id: int, hub: RealtimeHub | None = None
) -> bool:
    with get_session(engine) as session:
        result = session.execute(
            delete(Notification).where(
                Notification.id == notification_id, Notification.user_id == user_id
            )
        )
        removed = (result.rowcount or 0) > 0
    if removed and hub is not None:
        hub.emit_notifications_update(user_id)
    return removed
