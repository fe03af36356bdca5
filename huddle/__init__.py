"""
Huddle — Shared Rosters, XP and Live Sync for Gaming Groups
============================================================
Users belong to a *network* (their regular group of friends), record
players and matches scoped to that network, earn XP for what they do, and
send friend requests that fold two networks into one.  Every change is
pushed live to all connected members.

Package layout::

    huddle/
    ├── config.py          # YAML → typed Python config
    ├── errors.py          # Domain exception hierarchy
    ├── constants.py       # Level curve, sync scopes, frame types
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session/async helpers
    │   └── models.py      # All ORM models
    ├── engine/
    │   ├── rewards.py     # XpEventSpec + reward catalogue
    │   └── eligibility.py # OG / kick / referral badge rules (pure)
    ├── services/
    │   ├── network_service.py      # Networks, membership, friend requests
    │   ├── merge_service.py        # Network merge / split / kick / leave
    │   ├── ledger_service.py       # Idempotent XP ledger
    │   ├── realtime_service.py     # Connection registry + fan-out hub
    │   ├── notification_service.py # Persisted notifications
    │   ├── map_preference_service.py
    │   ├── reconciliation_service.py
    │   └── retention_service.py
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT, engine, hub, current user
        ├── auth.py        # Discord OAuth2 → JWT cookie
        └── routes/        # social, xp, notifications, user, realtime
"""

__version__ = "0.1.0"
