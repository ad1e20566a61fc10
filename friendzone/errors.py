"""
friendzone.errors — Typed failure taxonomy
============================================

Every service raises one of these instead of returning ad-hoc tuples so the
API layer can map failures to HTTP responses in one place
(see :mod:`friendzone.api.main`).

``ConflictError`` is special: it signals a uniqueness violation ("already
done").  Services catch it themselves and answer with a success-shaped
no-op result; it only escapes when a caller invokes a low-level insert
helper directly.
"""

from __future__ import annotations


class FriendZoneError(Exception):
    """Base class for all domain failures."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message or self.__class__.__name__


# ---------------------------------------------------------------------------
# Bad input
# ---------------------------------------------------------------------------
class ValidationError(FriendZoneError):
    """Bad input or an illegal state transition."""


class InvalidAmount(ValidationError):
    """XP awards must be strictly positive."""


class SelfFollowError(ValidationError):
    """A profile cannot follow itself."""


# ---------------------------------------------------------------------------
# Uniqueness violations — recovered into "already done" results
# ---------------------------------------------------------------------------
class ConflictError(FriendZoneError):
    """A unique constraint rejected the insert."""


class AlreadyCheckedIn(ConflictError):
    pass


class AlreadyVoted(ConflictError):
    pass


class AlreadyLiked(ConflictError):
    pass


class AlreadyMember(ConflictError):
    pass


# ---------------------------------------------------------------------------
# Everything else propagates to the caller
# ---------------------------------------------------------------------------
class AuthorizationError(FriendZoneError):
    """The actor lacks the role or standing for this operation."""


class QuotaExceeded(FriendZoneError):
    """The rank's image-post allowance for the current period is used up."""


class NotFoundError(FriendZoneError):
    """The referenced entity does not exist (or was deleted)."""


class TransientError(FriendZoneError):
    """Store or network failure.  Safe to retry; carries no semantic meaning."""
