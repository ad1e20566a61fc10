"""
Friends Zone — Progression & Moderation Engine
================================================
Backend core of a social-learning community: a feed of posts scoped to
global and community contexts, XP / levels / badges earned through daily
check-ins and approved posts, a follow / like / message graph, and a
moderation workflow driven by admins with advisory member votes.

Package layout::

    friendzone/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Topics, notification templates (en / vi)
    ├── errors.py          # Typed failure taxonomy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, sessions, async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default badge catalogue
    ├── engine/
    │   ├── ledger.py      # XP → level → rank (pure)
    │   ├── badges.py      # Badge trigger rules (pure)
    │   ├── visibility.py  # Moderation visibility + level gate (pure)
    │   ├── realtime.py    # Row-change reducer + optimistic likes (pure)
    │   └── events.py      # Actor context, LevelUp / BadgeUnlocked
    ├── services/
    │   ├── progression_service.py     # XP awards, check-ins, quotas
    │   ├── moderation_service.py      # Post lifecycle + feed
    │   ├── social_service.py          # Likes, follows, comments
    │   ├── notification_service.py    # Notification fan-out
    │   ├── community_service.py       # Communities + membership
    │   ├── messaging_service.py       # Direct messages
    │   ├── admin_service.py           # Audit log, block / unblock
    │   └── reconciliation_service.py  # Counter drift repair
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT identity → Actor
        └── routes/        # Feed, me, social, communities, admin
"""

__version__ = "0.1.0"
