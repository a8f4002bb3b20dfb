"""
Credential records for the login gate -- the ``usuarios`` table.

The table is created automatically on first use via `ensure_table()`.
Only password hashes are stored; hashing lives in ``dw_dashboard.auth.passwords``.
"""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from dw_dashboard.core.errors import DownstreamError, UsernameTakenError
from dw_dashboard.db.connection import get_engine
from dw_dashboard.core.logging import get_logger

logger = get_logger(__name__)

_TABLE = "usuarios"

_CREATE_SQL = f"""
CREATE TABLE IF NOT EXISTS {_TABLE} (
    id          SERIAL PRIMARY KEY,
    username    VARCHAR(100) NOT NULL UNIQUE,
    password    TEXT NOT NULL,            -- bcrypt hash
    rol         VARCHAR(50) NOT NULL DEFAULT 'usuario'
);
"""


@dataclass(frozen=True)
class UserRecord:
    id: int
    username: str
    password_hash: str
    rol: str


class UserStore:
    """Postgres-backed credential store."""

    def ensure_table(self) -> None:
        """Create the users table if it doesn't exist."""
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text(_CREATE_SQL))
            conn.commit()
        logger.info("User table '%s' ensured", _TABLE)

    def get(self, username: str) -> UserRecord | None:
        engine = get_engine()
        try:
            with engine.connect() as conn:
                row = conn.execute(
                    text(f"SELECT id, username, password, rol FROM {_TABLE} WHERE username = :username"),
                    {"username": username},
                ).mappings().first()
        except SQLAlchemyError as exc:
            logger.exception("User lookup failed")
            raise DownstreamError("Server error while signing in.", details=str(exc)) from exc

        if row is None:
            return None
        return UserRecord(
            id=row["id"],
            username=row["username"],
            password_hash=row["password"],
            rol=row["rol"],
        )

    def insert(self, username: str, password_hash: str, rol: str) -> None:
        engine = get_engine()
        try:
            with engine.connect() as conn:
                conn.execute(
                    text(f"INSERT INTO {_TABLE} (username, password, rol) VALUES (:username, :password, :rol)"),
                    {"username": username, "password": password_hash, "rol": rol},
                )
                conn.commit()
        except IntegrityError as exc:
            # 23505 unique_violation
            if getattr(exc.orig, "pgcode", None) == "23505":
                raise UsernameTakenError("Username already exists.") from exc
            logger.exception("User insert failed")
            raise DownstreamError("Server error while creating user.", details=str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            logger.exception("User insert failed")
            raise DownstreamError("Server error while creating user.", details=str(exc)) from exc
        logger.info("User '%s' created", username)


_store: UserStore | None = None


def get_user_store() -> UserStore:
    global _store
    if _store is None:
        _store = UserStore()
    return _store
