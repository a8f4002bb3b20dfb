"""
Login and user provisioning.

Both operations take the credential store as an argument so they can run
against ``UserStore`` in production and an in-memory store in tests.
"""
from __future__ import annotations

from typing import Protocol

from dw_dashboard.auth.passwords import hash_password, verify_password
from dw_dashboard.auth.tokens import issue_token
from dw_dashboard.core.errors import ClientInputError, InvalidCredentialsError
from dw_dashboard.db.users import UserRecord
from dw_dashboard.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ROLE = "usuario"


class CredentialStore(Protocol):
    def get(self, username: str) -> UserRecord | None: ...

    def insert(self, username: str, password_hash: str, rol: str) -> None: ...


def login(username: str, password: str, store: CredentialStore) -> str:
    """Return a signed session token, or raise ``InvalidCredentialsError``.

    Unknown users and wrong passwords get the same error.
    """
    logger.info("Login attempt  user=%s", username)

    user = store.get(username)
    if user is None:
        logger.info("Login failed: unknown user %s", username)
        raise InvalidCredentialsError("Invalid credentials.")

    if not verify_password(password, user.password_hash):
        logger.info("Login failed: bad password for %s", username)
        raise InvalidCredentialsError("Invalid credentials.")

    token = issue_token(user.id, user.rol)
    logger.info("Login ok  user=%s  rol=%s", username, user.rol)
    return token


def create_user(username: str, password: str, rol: str | None, store: CredentialStore) -> None:
    if not username or not username.strip():
        raise ClientInputError("username is required.")
    if not password:
        raise ClientInputError("password is required.")

    store.insert(username.strip(), hash_password(password), rol or DEFAULT_ROLE)
