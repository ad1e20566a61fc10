"""
friendzone.config — YAML Configuration Loader
===============================================

Reads ``config.yaml`` for community identity and gameplay tuning (XP per
action, feed page size, the canonical check-in timezone and the rank
table).  Secrets (``DATABASE_URL``, ``JWT_SECRET``) never live here; they
come from the environment / ``.env``.

Usage::

    from friendzone.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.community_name)    # "Friends Zone"
    print(cfg.ranks.max_level)   # 7
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from friendzone.engine.ledger import RankTable, default_rank_table

SUPPORTED_LANGUAGES: tuple[str, ...] = ("en", "vi")


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class FriendZoneConfig:
    """Immutable configuration loaded from ``config.yaml``.

    Every field has a default so tests and scripts can build one directly.
    """

    community_name: str = "Friends Zone"
    timezone: str = "Asia/Ho_Chi_Minh"  # Calendar used for daily check-ins
    default_language: str = "vi"
    supported_languages: tuple[str, ...] = SUPPORTED_LANGUAGES

    # Progression
    checkin_xp: int = 3
    post_xp: int = 2

    # Feed
    feed_page_size: int = 5

    ranks: RankTable = field(default_factory=default_rank_table)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def local_now(self, now: datetime | None = None) -> datetime:
        """*now* (default: current time) expressed in the community timezone."""
        if now is None:
            return datetime.now(self.tz)
        if now.tzinfo is None:
            raise ValueError("Expected a timezone-aware datetime")
        return now.astimezone(self.tz)

    def today(self, now: datetime | None = None) -> date:
        """Canonical calendar date for check-ins."""
        return self.local_now(now).date()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> FriendZoneConfig:
    """Read *path* and return a :class:`FriendZoneConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If the timezone, language or rank table is invalid.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = FriendZoneConfig()
    progression = raw.get("progression", {}) or {}
    feed = raw.get("feed", {}) or {}

    timezone = str(raw.get("timezone", defaults.timezone))
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone {timezone!r}") from exc

    languages = tuple(raw.get("supported_languages", defaults.supported_languages))
    default_language = str(raw.get("default_language", defaults.default_language))
    if default_language not in languages:
        raise ValueError(
            f"default_language {default_language!r} is not in {languages}"
        )

    ranks = (
        RankTable.from_config(raw["ranks"]) if raw.get("ranks") else defaults.ranks
    )

    return FriendZoneConfig(
        community_name=raw.get("community_name", defaults.community_name),
        timezone=timezone,
        default_language=default_language,
        supported_languages=languages,
        checkin_xp=int(progression.get("checkin_xp", defaults.checkin_xp)),
        post_xp=int(progression.get("post_xp", defaults.post_xp)),
        feed_page_size=int(feed.get("page_size", defaults.feed_page_size)),
        ranks=ranks,
    )
