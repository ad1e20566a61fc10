"""
friendzone.engine.ledger — XP Ledger
======================================

Pure mapping between accumulated XP, levels and rank metadata.
No database I/O; safe to call from any thread.

The rank table is immutable reference data.  :data:`DEFAULT_RANKS` is used
unless ``config.yaml`` supplies a ``ranks:`` section (see
:func:`friendzone.config.load_config`).
"""

from __future__ import annotations

import bisect
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from friendzone.errors import NotFoundError

__all__ = [
    "DEFAULT_RANKS",
    "ImagePerk",
    "LevelInfo",
    "Rank",
    "RankTable",
    "default_rank_table",
    "level_for_xp",
    "rank_for_level",
]

PERIODS = ("day", "week")


@dataclass(frozen=True, slots=True)
class ImagePerk:
    """How many image-bearing posts a rank may create per period.

    ``limit=None`` means unlimited.
    """

    limit: int | None
    period: str = "week"

    def describe(self) -> str:
        if self.limit is None:
            return "unlimited"
        return f"{self.limit}/{self.period}"


@dataclass(frozen=True, slots=True)
class Rank:
    level: int
    name: str
    name_vi: str
    min_xp: int
    color: str
    image_perk: ImagePerk


@dataclass(frozen=True, slots=True)
class LevelInfo:
    """Result of :meth:`RankTable.level_for_xp`.

    ``xp_to_next_level`` is 0 at the maximum level (``is_max`` is True).
    """

    level: int
    rank: Rank
    xp_into_level: int
    xp_to_next_level: int
    is_max: bool


DEFAULT_RANKS: tuple[Rank, ...] = (
    Rank(1, "Newcomer", "Người mới", 0, "slate", ImagePerk(1, "week")),
    Rank(2, "Learner", "Học viên", 8, "green", ImagePerk(3, "week")),
    Rank(3, "Contributor", "Cộng tác viên", 30, "blue", ImagePerk(1, "day")),
    Rank(4, "Mentor", "Người hướng dẫn", 80, "violet", ImagePerk(3, "day")),
    Rank(5, "Expert", "Chuyên gia", 200, "amber", ImagePerk(10, "day")),
    Rank(6, "Master", "Bậc thầy", 500, "orange", ImagePerk(None)),
    Rank(7, "Legend", "Huyền thoại", 1000, "red", ImagePerk(None)),
)


class RankTable:
    """Validated, ordered rank table.

    Invariants checked on construction:
      * levels are contiguous starting at 1
      * the first rank starts at 0 XP
      * ``min_xp`` strictly increases with level
    """

    __slots__ = ("_ranks", "_thresholds")

    def __init__(self, ranks: Iterable[Rank]) -> None:
        ordered = tuple(sorted(ranks, key=lambda r: r.min_xp))
        if not ordered:
            raise ValueError("Rank table must define at least one rank")
        if ordered[0].min_xp != 0:
            raise ValueError("The first rank must start at 0 XP")
        for index, rank in enumerate(ordered):
            if rank.level != index + 1:
                raise ValueError(
                    f"Rank levels must be contiguous from 1 in XP order "
                    f"(got level {rank.level} at position {index + 1})"
                )
            if index and rank.min_xp == ordered[index - 1].min_xp:
                raise ValueError(f"Duplicate min_xp {rank.min_xp} in rank table")
            if rank.image_perk.period not in PERIODS:
                raise ValueError(f"Unknown image quota period {rank.image_perk.period!r}")
        self._ranks = ordered
        self._thresholds = [r.min_xp for r in ordered]

    @classmethod
    def from_config(cls, rows: Iterable[Mapping[str, Any]]) -> RankTable:
        """Build a table from the ``ranks:`` list in ``config.yaml``."""
        ranks = []
        for row in rows:
            quota = row.get("image_quota", {}) or {}
            limit = quota.get("limit")
            ranks.append(Rank(
                level=int(row["level"]),
                name=str(row["name"]),
                name_vi=str(row.get("name_vi", row["name"])),
                min_xp=int(row["min_xp"]),
                color=str(row.get("color", "slate")),
                image_perk=ImagePerk(
                    limit=int(limit) if limit is not None else None,
                    period=str(quota.get("period", "week")),
                ),
            ))
        return cls(ranks)

    @property
    def ranks(self) -> tuple[Rank, ...]:
        return self._ranks

    @property
    def max_level(self) -> int:
        return self._ranks[-1].level

    def __len__(self) -> int:
        return len(self._ranks)

    def __iter__(self):
        return iter(self._ranks)

    def rank_for_level(self, level: int) -> Rank:
        if not 1 <= level <= self.max_level:
            raise NotFoundError(f"No rank defined for level {level}")
        return self._ranks[level - 1]

    def level_for_xp(self, xp: int) -> LevelInfo:
        """Return the highest rank whose ``min_xp <= xp``."""
        xp = max(xp, 0)
        index = bisect.bisect_right(self._thresholds, xp) - 1
        rank = self._ranks[index]
        is_max = rank.level == self.max_level
        if is_max:
            to_next = 0
        else:
            to_next = self._ranks[index + 1].min_xp - xp
        return LevelInfo(
            level=rank.level,
            rank=rank,
            xp_into_level=xp - rank.min_xp,
            xp_to_next_level=to_next,
            is_max=is_max,
        )


_DEFAULT_TABLE = RankTable(DEFAULT_RANKS)


def default_rank_table() -> RankTable:
    return _DEFAULT_TABLE


def rank_for_level(level: int, table: RankTable | None = None) -> Rank:
    return (table or _DEFAULT_TABLE).rank_for_level(level)


def level_for_xp(xp: int, table: RankTable | None = None) -> LevelInfo:
    return (table or _DEFAULT_TABLE).level_for_xp(xp)
