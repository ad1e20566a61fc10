"""
friendzone.engine.events — Actor context and progression events
=================================================================

``Actor`` is the explicit identity every service operation receives
instead of reading ambient session state.  It is built per request from
the authenticated profile (see :func:`friendzone.api.deps.get_current_actor`)
and can be constructed freely in tests to simulate any identity.

``LevelUp`` and ``BadgeUnlocked`` are the events the progression pipeline
emits for notification fan-out and client toasts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from friendzone.database.models import ProfileStatus, Role

if TYPE_CHECKING:
    from friendzone.database.models import Profile

__all__ = ["Actor", "BadgeUnlocked", "LevelUp"]


@dataclass(frozen=True, slots=True)
class Actor:
    """Who is performing an operation.

    ``level`` is a snapshot taken when the actor was resolved; read-side
    gating uses it, write paths re-read the profile row.
    """

    id: str
    role: str = Role.MEMBER
    level: int = 1
    status: str = ProfileStatus.ACTIVE
    language: str = "vi"

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_blocked(self) -> bool:
        return self.status == ProfileStatus.BLOCKED

    @classmethod
    def from_profile(cls, profile: Profile) -> Actor:
        return cls(
            id=profile.id,
            role=profile.role,
            level=profile.level,
            status=profile.status,
            language=profile.language,
        )


@dataclass(frozen=True, slots=True)
class LevelUp:
    user_id: str
    old_level: int
    new_level: int
    rank_name: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class BadgeUnlocked:
    user_id: str
    badge_id: int
    badge_name: str
    icon: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
