"""
huddle.config — YAML Configuration Loader
==========================================

**Why this file exists:**
This module reads ``config.yaml`` for **infrastructure-only** settings
(cookie handling, search limits, data retention).  Secrets and URLs come
from the environment (``.env``) and reward values live in
:mod:`huddle.engine.rewards`.

Usage::

    from huddle.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.cookie_name)       # "tg_token"
    print(cfg.retention_days)    # 90
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure only.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class HuddleConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Auth cookie
    cookie_name: str = "tg_token"
    cookie_max_age_days: int = 7
    cookie_secure: bool = False
    cookie_domain: str | None = None

    # Social search
    search_limit: int = 8
    search_min_length: int = 2

    # GDPR-style retention of inactive accounts (0 disables the job)
    retention_days: int = 90
    retention_check_hours: int = 24

    @property
    def cookie_max_age_seconds(self) -> int:
        return self.cookie_max_age_days * 24 * 60 * 60


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> HuddleConfig:
    """Read *path* and return a :class:`HuddleConfig` instance.

    Keys missing from the file fall back to the dataclass defaults.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If a numeric setting is not a positive integer (``retention_days``
        may be 0 to disable the purge job).
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = HuddleConfig()
    cfg = HuddleConfig(
        cookie_name=str(raw.get("cookie_name", defaults.cookie_name)),
        cookie_max_age_days=int(raw.get("cookie_max_age_days", defaults.cookie_max_age_days)),
        cookie_secure=bool(raw.get("cookie_secure", defaults.cookie_secure)),
        cookie_domain=raw.get("cookie_domain") or None,
        search_limit=int(raw.get("search_limit", defaults.search_limit)),
        search_min_length=int(raw.get("search_min_length", defaults.search_min_length)),
        retention_days=int(raw.get("retention_days", defaults.retention_days)),
        retention_check_hours=int(
            raw.get("retention_check_hours", defaults.retention_check_hours)
        ),
    )

    for name in ("cookie_max_age_days", "search_limit", "retention_check_hours"):
        if getattr(cfg, name) <= 0:
            raise ValueError(f"{name} must be a positive integer")
    if cfg.retention_days < 0:
        raise ValueError("retention_days must be >= 0")
    return cfg
