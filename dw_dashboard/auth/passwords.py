"""Password hashing with bcrypt."""
from __future__ import annotations

import bcrypt

from dw_dashboard.core.config import get_settings


def hash_password(plain: str, rounds: int | None = None) -> str:
    if rounds is None:
        rounds = get_settings().bcrypt_rounds
    hashed = bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Constant-time comparison of *plain* against a stored bcrypt hash.

    A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False
