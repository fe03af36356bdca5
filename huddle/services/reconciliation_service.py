"""
huddle.services.reconciliation_service — XP Total Reconciliation
=================================================================

Validates the cached ``users.xp_total`` against the ``xp_events`` ledger
and corrects drift if found.

How it works:
    1. ``SUM(amount)`` from ``xp_events`` grouped by user.
    2. Compare against each user's stored ``xp_total``.
    3. On mismatch, overwrite the cache with the ledger sum.
    4. Log all corrections for audit.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select, update

from huddle.database.engine import get_session
from huddle.database.models import User, XpEvent

logger = logging.getLogger(__name__)


def reconcile_xp_totals(engine: Engine) -> dict:
    """Recompute every ``xp_total`` from the ledger and fix drift.

    Returns ``{"checked": N, "corrected": M, "corrections": [...]}``.
    """
    corrections: list[dict] = []

    with get_session(engine) as session:
        truth_map: dict[int, int] = {
            row.user_id: int(row.actual or 0)
            for row in session.execute(
                select(XpEvent.user_id, func.sum(XpEvent.amount).label("actual"))
                .group_by(XpEvent.user_id)
            ).all()
        }
        stored_rows = session.execute(select(User.id, User.xp_total)).all()

        for user_id, stored in stored_rows:
            actual = truth_map.get(user_id, 0)
            if stored == actual:
                continue
            corrections.append({
                "user_id": user_id,
                "stored": stored,
                "actual": actual,
                "diff": actual - stored,
            })
            session.execute(update(User).where(User.id == user_id).values(xp_total=actual))

    checked = len(stored_rows)
    if corrections:
        logger.warning(
            "XP reconciliation: corrected %d/%d totals: %s",
            len(corrections), checked, corrections,
        )
    else:
        logger.info("XP reconciliation: all %d totals match", checked)

    return {
        "checked": checked,
        "corrected": len(corrections),
        "corrections": corrections,
        "timestamp": datetime.now(UTC).isoformat(),
    }
