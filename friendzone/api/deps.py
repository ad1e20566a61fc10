"""
friendzone.api.deps — FastAPI dependency injection
====================================================

Identity arrives as an HS256 bearer token issued by the identity provider
(claims: ``sub``, ``email``, ``name``, ``avatar_url``).  The first request
with a new ``sub`` creates the profile.  Authority never comes from the
token: the role is read from the profile row on every request.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from friendzone.config import FriendZoneConfig, load_config
from friendzone.database.engine import create_db_engine, get_session
from friendzone.engine.events import Actor
from friendzone.services.progression_service import get_or_create_profile

logger = logging.getLogger(__name__)

_WEAK_SECRETS = frozenset({
    "friendzone-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Use the signing secret of your identity provider."
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> FriendZoneConfig:
    path = Path(os.getenv("FRIENDZONE_CONFIG", "config.yaml"))
    if not path.exists():
        logger.warning("%s not found, using built-in defaults", path)
        return FriendZoneConfig()
    return load_config(path)


def _decode(authorization: str | None) -> dict | None:
    if not authorization:
        return None
    if not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not payload.get("sub"):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token has no subject")
    return payload


def _resolve_actor(engine: Engine, cfg: FriendZoneConfig, payload: dict) -> Actor:
    with get_session(engine) as session:
        profile = get_or_create_profile(
            session,
            str(payload["sub"]),
            email=payload.get("email"),
            full_name=payload.get("name"),
            avatar_url=payload.get("avatar_url"),
            language=cfg.default_language,
        )
        return Actor.from_profile(profile)


def get_optional_actor(
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
    cfg: FriendZoneConfig = Depends(get_config),
) -> Actor | None:
    """The signed-in actor, or ``None`` for guests."""
    payload = _decode(authorization)
    if payload is None:
        return None
    return _resolve_actor(engine, cfg, payload)


def get_current_actor(
    actor: Actor | None = Depends(get_optional_actor),
) -> Actor:
    """Validate JWT and return the actor. Raises 401 if missing or invalid."""
    if actor is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    return actor


def get_current_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return actor
