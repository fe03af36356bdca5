"""
huddle.services.map_preference_service — Per-Network Map Bans
==============================================================

Stored shape: ``{"banned": {game_key: [map_name, ...]}}``.  Anything else
normalizes to an empty ban list; map names must be non-blank strings and
are de-duplicated in first-seen order.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from huddle.database.engine import get_session
from huddle.database.models import MapPreference

logger = logging.getLogger(__name__)


def empty_preferences() -> dict[str, dict[str, list[str]]]:
    return {"banned": {}}


def normalize_preferences(data: Any) -> dict[str, dict[str, list[str]]]:
    if not isinstance(data, dict) or not isinstance(data.get("banned"), dict):
        return empty_preferences()
    banned: dict[str, list[str]] = {}
    for game, maps in data["banned"].items():
        if not isinstance(maps, list):
            continue
        kept = [m for m in maps if isinstance(m, str) and m.strip()]
        if kept:
            banned[str(game)] = list(dict.fromkeys(kept))
    return {"banned": banned}


def union_bans(target: Any, source: Any) -> dict[str, dict[str, list[str]]]:
    """Per-game union of two ban lists; target entries keep their order."""
    merged = normalize_preferences(target)["banned"]
    for game, maps in normalize_preferences(source)["banned"].items():
        merged[game] = list(dict.fromkeys([*merged.get(game, []), *maps]))
    return {"banned": merged}


def merge_preferences(session: Session, source_network_id: str, target_network_id: str) -> None:
    """Fold the source network's bans into the target and drop the source row."""
    source = session.get(MapPreference, source_network_id)
    if source is None:
        return
    target = session.get(MapPreference, target_network_id)
    if target is None:
        session.add(MapPreference(
            network_id=target_network_id,
            preferences=normalize_preferences(source.preferences),
        ))
    else:
        target.preferences = union_bans(target.preferences, source.preferences)
    session.delete(source)
    session.flush()


def get_map_preferences(engine: Engine, network_id: str) -> dict[str, dict[str, list[str]]]:
    with get_session(engine) as session:
        row = session.get(MapPreference, network_id)
        if row is None:
            return empty_preferences()
        return normalize_preferences(row.preferences)


def save_map_preferences(
    engine: Engine, network_id: str, preferences: Any
) -> dict[str, dict[str, list[str]]]:
    normalized = normalize_preferences(preferences)
    with get_session(engine) as session:
        row = session.get(MapPreference, network_id)
        if row is None:
            session.add(MapPreference(network_id=network_id, preferences=normalized))
        else:
            row.preferences = normalized
    logger.debug("Saved map bans for network %s: %s", network_id, normalized)
    return normalized
