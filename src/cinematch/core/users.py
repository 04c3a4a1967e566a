from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import bcrypt

from cinematch.core.database import Database, DatabaseUnavailable

INSERT_USER_SQL = (
    "INSERT INTO users (email, password_hash, first_name, last_name) "
    "VALUES (%s, %s, %s, %s) "
    "ON CONFLICT (email) DO NOTHING "
    "RETURNING id, email, first_name, last_name, created_at"
)

SELECT_USER_BY_EMAIL_SQL = (
    "SELECT id, email, password_hash, first_name, last_name, created_at "
    "FROM users WHERE email = %s"
)

SELECT_USER_BY_ID_SQL = (
    "SELECT id, email, first_name, last_name, created_at FROM users WHERE id = %s"
)


@dataclass(frozen=True)
class User:
    id: int
    email: str
    first_name: str | None = None
    last_name: str | None = None
    created_at: datetime | None = None


def normalise_email(email: str) -> str:
    return email.strip().lower()


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the store.
        return False


def _row_to_user(row: dict[str, Any]) -> User:
    return User(
        id=int(row["id"]),
        email=row["email"],
        first_name=row.get("first_name"),
        last_name=row.get("last_name"),
        created_at=row.get("created_at"),
    )


def create_user(
    db: Database,
    *,
    email: str,
    password: str,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User | None:
    """Insert a user. Returns None when the email is already registered.

    The facade answers store failures with an empty result, which looks the same
    as `ON CONFLICT DO NOTHING`; the email lookup tells the two apart and raises
    `DatabaseUnavailable` when nothing was written for another reason.
    """

    normalised = normalise_email(email)
    row = db.query(
        INSERT_USER_SQL,
        (normalised, hash_password(password), first_name, last_name),
    ).first()
    if row:
        return _row_to_user(row)

    if db.query(SELECT_USER_BY_EMAIL_SQL, (normalised,)).first() is not None:
        return None
    raise DatabaseUnavailable("Database not available")


def get_user_by_id(db: Database, user_id: int) -> User | None:
    row = db.query(SELECT_USER_BY_ID_SQL, (user_id,)).first()
    return _row_to_user(row) if row else None


def authenticate(db: Database, email: str, password: str) -> User | None:
    row = db.query(SELECT_USER_BY_EMAIL_SQL, (normalise_email(email),)).first()
    if row is None or not verify_password(password, row["password_hash"]):
        return None
    return _row_to_user(row)
