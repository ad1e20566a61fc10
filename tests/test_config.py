"""
tests/test_config.py — YAML Configuration Loader
==================================================
"""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from friendzone.config import FriendZoneConfig, load_config


def _write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_empty_file_uses_defaults(self, tmp_path):
        cfg = load_config(_write(tmp_path, ""))
        assert cfg == FriendZoneConfig()

    def test_overrides(self, tmp_path):
        cfg = load_config(_write(tmp_path, """
community_name: Guild Hall
timezone: Europe/Berlin
default_language: en
progression:
  checkin_xp: 5
  post_xp: 1
feed:
  page_size: 20
ranks:
  - {level: 1, name: Rookie, min_xp: 0, image_quota: {limit: 1, period: day}}
  - {level: 2, name: Pro, min_xp: 10, image_quota: {limit: null}}
"""))
        assert cfg.community_name == "Guild Hall"
        assert cfg.timezone == "Europe/Berlin"
        assert cfg.default_language == "en"
        assert cfg.checkin_xp == 5
        assert cfg.post_xp == 1
        assert cfg.feed_page_size == 20
        assert cfg.ranks.max_level == 2

    def test_unknown_timezone(self, tmp_path):
        with pytest.raises(ValueError, match="timezone"):
            load_config(_write(tmp_path, "timezone: Mars/Olympus\n"))

    def test_default_language_must_be_supported(self, tmp_path):
        with pytest.raises(ValueError, match="default_language"):
            load_config(_write(tmp_path, "default_language: fr\n"))


class TestCalendar:
    def test_today_uses_community_timezone(self):
        cfg = FriendZoneConfig()
        # 18:30 UTC is already the next day in Ho Chi Minh City (UTC+7)
        assert cfg.today(datetime(2026, 10, 21, 18, 30, tzinfo=UTC)) == date(2026, 10, 22)
        assert cfg.today(datetime(2026, 10, 21, 16, 59, tzinfo=UTC)) == date(2026, 10, 21)

    def test_naive_datetime_rejected(self):
        with pytest.raises(ValueError):
            FriendZoneConfig().local_now(datetime(2026, 10, 21, 12, 0))
