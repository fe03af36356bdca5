"""
huddle.services.retention_service — Inactive Account Retention
================================================================

Accounts whose ``last_active`` is older than ``retention_days`` are deleted
together with their ledger rows, notifications and pending requests; a
network they leave empty is torn down with them.

Runs as a background asyncio task started by the API lifespan
(:func:`retention_loop`) or can be invoked ad-hoc
(:func:`purge_inactive_users`).

**Deletion is batched** so a large backlog never holds one long
transaction: each batch of ``BATCH_SIZE`` users commits on its own.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import Engine, select

from huddle.database.engine import get_session, run_db
from huddle.database.models import User
from huddle.services.network_service import purge_user
from huddle.services.reconciliation_service import reconcile_xp_totals

if TYPE_CHECKING:
    from huddle.services.realtime_service import RealtimeHub

logger = logging.getLogger(__name__)

BATCH_SIZE = 200


def purge_inactive_users(
    engine: Engine, retention_days: int = 90, hub: RealtimeHub | None = None
) -> dict[str, int]:
    """Delete users inactive for more than ``retention_days``.

    Surviving users who had a pending request with a purged account get a
    ``social:update`` once the batch commits.

    Returns ``{"users_deleted": N, "networks_deleted": M}``.
    """
    if retention_days <= 0:
        return {"users_deleted": 0, "networks_deleted": 0}

    cutoff = datetime.now(UTC) - timedelta(days=retention_days)
    users_deleted = 0
    networks_deleted = 0

    while True:
        with get_session(engine) as session:
            ids = session.scalars(
                select(User.id)
                .where(User.last_active < cutoff)
                .order_by(User.id)
                .limit(BATCH_SIZE)
            ).all()
            if not ids:
                break

            vacated: set[str] = set()
            counterparts: set[int] = set()
            for user_id in ids:
                purged = purge_user(session, user_id)
                if purged is not None:
                    vacated.add(purged.network_id)
                    counterparts.update(purged.counterpart_ids)
            session.flush()
            remaining = set(session.scalars(
                select(User.network_id).where(User.network_id.in_(vacated))
            ).all())
            users_deleted += len(ids)
            networks_deleted += len(vacated - remaining)

        counterparts.difference_update(ids)
        if hub is not None and counterparts:
            hub.emit_social_update(sorted(counterparts))

    logger.info(
        "Retention purge complete — %d users, %d networks removed "
        "(retention_days=%d, cutoff=%s)",
        users_deleted, networks_deleted, retention_days, cutoff.isoformat(),
    )
    return {"users_deleted": users_deleted, "networks_deleted": networks_deleted}


async def retention_loop(
    engine: Engine,
    retention_days: int,
    interval_hours: int,
    hub: RealtimeHub | None = None,
) -> None:
    """Purge once now, then every ``interval_hours`` until cancelled.

    Each cycle also re-checks cached XP totals against the ledger.
    """
    while True:
        try:
            await run_db(purge_inactive_users, engine, retention_days, hub)
            await run_db(reconcile_xp_totals, engine)
        except Exception:
            logger.exception("Maintenance cycle failed; retrying next cycle")
        await asyncio.sleep(interval_hours * 3600)
