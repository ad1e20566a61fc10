"""
friendzone.database.seed — Default Badge Seeder
=================================================

Baseline badge catalogue seeded on first startup so level-ups and
check-in streaks have something to unlock.

Idempotent: only inserts badges whose name doesn't already exist.  Badges
edited later by an admin are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from friendzone.database.models import Badge, TriggerType

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default badge catalogue: name → (icon, description, trigger_type, config)
# ---------------------------------------------------------------------------
DEFAULT_BADGES: dict[str, tuple[str, str, str, dict | None]] = {
    "First Steps": (
        "\U0001f463", "Checked in for the first time",  # 👣
        TriggerType.CHECKIN_COUNT, {"count": 1},
    ),
    "Regular": (
        "\U0001f4c5", "Checked in on 7 different days",  # 📅
        TriggerType.CHECKIN_COUNT, {"count": 7},
    ),
    "First Post": (
        "✍️", "Shared a first approved post",  # ✍️
        TriggerType.POST_COUNT, {"count": 1},
    ),
    "Rising Star": (
        "⭐", "Reached level 3",  # ⭐
        TriggerType.LEVEL_REACHED, {"value": 3},
    ),
    "Mentor": (
        "\U0001f393", "Reached level 4",  # 🎓
        TriggerType.LEVEL_REACHED, {"value": 4},
    ),
    "Centurion": (
        "\U0001f4af", "Earned 100 XP",  # 💯
        TriggerType.XP_MILESTONE, {"value": 100},
    ),
    "Founding Member": (
        "\U0001f3c5", "Granted by an admin",  # 🏅
        TriggerType.MANUAL, None,
    ),
}


def seed_default_badges(engine: Engine) -> int:
    """Insert any missing default badges.  Returns how many were created."""
    created = 0
    with Session(engine) as session:
        existing = set(session.scalars(select(Badge.name)).all())
        for name, (icon, description, trigger_type, config) in DEFAULT_BADGES.items():
            if name in existing:
                continue
            session.add(Badge(
                name=name,
                icon=icon,
                description=description,
                trigger_type=trigger_type,
                trigger_config=config,
            ))
            created += 1
        session.commit()

    if created:
        logger.info("Seeded %d default badges", created)
    return created
