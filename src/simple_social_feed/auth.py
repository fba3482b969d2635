from __future__ import annotations

import logging
import os
import secrets
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Header

from .errors import NotAuthenticated

logger = logging.getLogger(__name__)


def _load_secret() -> str:
    secret = os.getenv("JWT_SECRET")
    if not secret:
        logger.warning("JWT_SECRET not set, using random secret (tokens won't survive a restart)")
        secret = secrets.token_hex(32)
    return secret


JWT_SECRET = _load_secret()
JWT_ALGORITHM = "HS256"
JWT_EXPIRY_HOURS = 1


def create_token(user_id: int, email: str | None = None, expires_hours: int = JWT_EXPIRY_HOURS) -> str:
    """Token wie ihn der Login-Service ausstellt (für CLI und Tests)."""
    now = datetime.now(timezone.utc)
    payload = {
        "userId": str(user_id),
        "iat": now,
        "exp": now + timedelta(hours=expires_hours),
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def get_user_id(authorization: str | None = Header(None)) -> int:
    """
    FastAPI-Dependency: liefert die verifizierte User-ID aus dem Bearer-Token.
    """
    if not authorization:
        raise NotAuthenticated("Not authenticated.")

    token = authorization.removeprefix("Bearer ").strip()
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError as exc:
        logger.info("Rejected token: %s", exc)
        raise NotAuthenticated("Not authenticated.") from exc

    try:
        return int(payload["userId"])
    except (KeyError, TypeError, ValueError) as exc:
        raise NotAuthenticated("Not authenticated.") from exc
