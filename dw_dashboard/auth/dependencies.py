"""
Bearer-token gate for protected routes.

``require_claim`` runs before the route body: with no token it raises
``MissingTokenError`` (403), with a bad one ``InvalidTokenError`` (401).
On success the verified claim is attached to ``request.state.claim`` and
returned to the route.
"""
from __future__ import annotations

from fastapi import Header, Request

from dw_dashboard.auth.tokens import SessionClaim, verify_token
from dw_dashboard.core.errors import MissingTokenError
from dw_dashboard.core.logging import get_logger

logger = get_logger(__name__)


def extract_bearer(authorization: str | None) -> str | None:
    """``"Bearer abc"`` → ``"abc"``; anything without a token part → None."""
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2:
        return None
    token = parts[1].strip()
    return token or None


def require_claim(
    request: Request,
    authorization: str | None = Header(None),
) -> SessionClaim:
    token = extract_bearer(authorization)
    if token is None:
        logger.info("Access denied: no token on %s", request.url.path)
        raise MissingTokenError("Access denied: no token provided.")

    claim = verify_token(token)
    request.state.claim = claim
    return claim
