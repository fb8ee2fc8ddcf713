"""
agora.api.deps — Shared route dependencies
===========================================

Process-wide engine, config and :class:`ConfigCache`, plus the admin
bearer-token guard.  The signing secret is checked when this module is
imported, so a misconfigured deployment never serves a request.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from agora.config import AgoraConfig, load_config
from agora.database.engine import create_db_engine
from agora.engine.cache import ConfigCache

JWT_ALGORITHM = "HS256"

# Placeholder values shipped in examples and docs.
_PLACEHOLDER_SECRETS = frozenset({"agora-dev-secret-change-me", "change-me", "secret", "dev"})
_MIN_SECRET_LENGTH = 32


def _load_jwt_secret() -> str:
    """``JWT_SECRET`` from the environment, rejected when unusable."""
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET is not set; admin endpoints cannot verify tokens. "
            "Generate one with `python -c \"import secrets; print(secrets.token_urlsafe(64))\"`."
        )
    if secret in _PLACEHOLDER_SECRETS:
        raise RuntimeError(f"JWT_SECRET {secret!r} is a known weak default; replace it.")
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short: {len(secret)} characters, "
            f"need at least {_MIN_SECRET_LENGTH}."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


# ---------------------------------------------------------------------------
# Process-wide resources
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> AgoraConfig:
    return load_config()


@lru_cache(maxsize=1)
def _shared_cache() -> ConfigCache:
    cache = ConfigCache(get_engine())
    cache.load_all()
    return cache


def get_cache() -> ConfigCache:
    """The settings/achievement cache, loaded on first use."""
    return _shared_cache()


# ---------------------------------------------------------------------------
# Admin guard
# ---------------------------------------------------------------------------
def get_current_admin(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Decoded admin claims with the numeric actor id under ``admin_id``.

    401 for a missing, malformed or unsigned token and 403 for a valid
    token without ``is_admin``.
    """
    scheme, _, token = (authorization or "").partition(" ")
    if scheme != "Bearer" or not token:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not claims.get("is_admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    try:
        claims["admin_id"] = int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token has no numeric subject")
    return claims
