"""
friendzone.constants — Shared Constants & Helpers
===================================================

Single source of truth for presentation constants used by services and
the API.  Import from here instead of duplicating string literals.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Feed topics (the "topic" tag on posts)
# ---------------------------------------------------------------------------
TOPICS: tuple[str, ...] = ("share", "youtube", "mmo")
DEFAULT_TOPIC = "share"

NOTIFICATION_ICONS: dict[str, str] = {
    "like": "❤️",          # ❤️
    "comment": "\U0001f4ac",         # 💬
    "badge": "\U0001f3c6",           # 🏆
    "system": "\U0001f514",          # 🔔
}

# ---------------------------------------------------------------------------
# Notification messages, keyed by message key then language
# ---------------------------------------------------------------------------
MESSAGES: dict[str, dict[str, str]] = {
    "like": {
        "en": "{actor} liked your post",
        "vi": "{actor} đã thích bài viết của bạn",
    },
    "comment": {
        "en": "{actor} commented on your post",
        "vi": "{actor} đã bình luận bài viết của bạn",
    },
    "badge": {
        "en": "You unlocked the {badge} badge {icon}",
        "vi": "Bạn đã mở khóa huy hiệu {badge} {icon}",
    },
    "level_up": {
        "en": "Level up! You are now level {level} ({rank})",
        "vi": "Lên cấp! Bạn đã đạt cấp {level} ({rank})",
    },
    "post_approved": {
        "en": "Your post was approved",
        "vi": "Bài viết của bạn đã được duyệt",
    },
    "post_rejected": {
        "en": "Your post was rejected",
        "vi": "Bài viết của bạn đã bị từ chối",
    },
    "level_set": {
        "en": "An admin set your level to {level}",
        "vi": "Quản trị viên đã đặt cấp của bạn thành {level}",
    },
}

FALLBACK_LANGUAGE = "en"


def render_message(key: str, language: str, **params: object) -> str:
    """Format the message *key* in *language*, falling back to English."""
    variants = MESSAGES.get(key)
    if variants is None:
        logger.warning("Unknown message key %r", key)
        return key
    template = variants.get(language) or variants[FALLBACK_LANGUAGE]
    return template.format(**params).strip()
