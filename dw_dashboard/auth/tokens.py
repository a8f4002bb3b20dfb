"""
Signed, time-bounded session claims (JWT, HS256).

A claim carries the user id and role.  It is created at login, verified on
every protected request, never refreshed, and simply expires after
``token_ttl_minutes``.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from dw_dashboard.core.config import get_settings
from dw_dashboard.core.errors import InvalidTokenError
from dw_dashboard.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SessionClaim:
    user_id: Any
    rol: str
    expires_at: datetime


def issue_token(user_id: Any, rol: str, now: datetime | None = None) -> str:
    settings = get_settings()
    if now is None:
        now = datetime.now(timezone.utc)
    payload = {
        "id": user_id,
        "rol": rol,
        "iat": now,
        "exp": now + timedelta(minutes=settings.token_ttl_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> SessionClaim:
    """Check signature and expiry and return the claim.

    Raises
    ------
    InvalidTokenError
        Expired, badly signed, malformed, or missing the id/rol claims.
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "id", "rol"]},
        )
    except jwt.ExpiredSignatureError as exc:
        logger.info("Token rejected: expired")
        raise InvalidTokenError("Invalid or expired token.") from exc
    except jwt.InvalidTokenError as exc:
        logger.info("Token rejected: %s", exc)
        raise InvalidTokenError("Invalid or expired token.") from exc

    return SessionClaim(
        user_id=payload["id"],
        rol=payload["rol"],
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )
