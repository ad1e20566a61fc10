"""
friendzone.engine.badges — Badge Unlock Rules
===============================================

Handler-registry implementation for badge trigger evaluation.
Each TriggerType maps to a pure handler function that receives a
BadgeContext and the badge's trigger_config JSON.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

from friendzone.database.models import TriggerType

logger = logging.getLogger(__name__)


class BadgeLike(Protocol):
    id: int
    name: str
    trigger_type: str
    trigger_config: dict | None


# ---------------------------------------------------------------------------
# Badge Context — passed to every trigger handler
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BadgeContext:
    """Snapshot of user state after an XP award.

    Parameters
    ----------
    user_xp : Total accumulated XP (after this award).
    user_level : Current level (after any level-up).
    old_level : Level before this award (None if the level did not change).
    checkin_count : Total daily check-ins recorded for the user.
    post_count : Total posts authored by the user.
    """

    user_xp: int = 0
    user_level: int = 1
    old_level: int | None = None
    checkin_count: int = 0
    post_count: int = 0


# ---------------------------------------------------------------------------
# Trigger handlers — pure functions (config, ctx) → bool
# ---------------------------------------------------------------------------
def _check_level_reached(config: dict, ctx: BadgeContext) -> bool:
    """Config: {"value": 5}"""
    value = config.get("value")
    if value is None:
        return False
    return ctx.user_level >= value


def _check_xp_milestone(config: dict, ctx: BadgeContext) -> bool:
    """Config: {"value": 100}"""
    value = config.get("value")
    if value is None:
        return False
    return ctx.user_xp >= value


def _check_checkin_count(config: dict, ctx: BadgeContext) -> bool:
    """Config: {"count": 7}"""
    count = config.get("count")
    if count is None:
        return False
    return ctx.checkin_count >= count


def _check_post_count(config: dict, ctx: BadgeContext) -> bool:
    """Config: {"count": 10}"""
    count = config.get("count")
    if count is None:
        return False
    return ctx.post_count >= count


TRIGGER_HANDLERS: dict[str, Callable[[dict, BadgeContext], bool]] = {
    TriggerType.LEVEL_REACHED: _check_level_reached,
    TriggerType.XP_MILESTONE: _check_xp_milestone,
    TriggerType.CHECKIN_COUNT: _check_checkin_count,
    TriggerType.POST_COUNT: _check_post_count,
    # TriggerType.MANUAL intentionally omitted — never auto-unlocked
}


def check_badges(
    badges: Iterable[BadgeLike],
    ctx: BadgeContext,
    already_earned: set[int],
) -> list[int]:
    """Return the ids of badges newly unlocked for *ctx*.

    Badges already in *already_earned* are skipped, as are badges with an
    unknown or manual trigger type.
    """
    newly_earned: list[int] = []
    for badge in badges:
        if badge.id in already_earned:
            continue
        handler = TRIGGER_HANDLERS.get(badge.trigger_type)
        if handler is None:
            continue
        if handler(badge.trigger_config or {}, ctx):
            newly_earned.append(badge.id)
            logger.info("Badge unlocked: %s (id=%d)", badge.name, badge.id)
    return newly_earned
