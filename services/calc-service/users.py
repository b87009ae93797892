"""
Users and API-key authentication.

A user receives an API key on registration; requests identify themselves
with the X-API-Key header.
"""

from __future__ import annotations

import hashlib
import hmac
import os
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import psycopg2.errors

from store import PostgresStore

PBKDF2_ITERATIONS = 200_000


class UsernameTakenError(Exception):
    pass


class InvalidCredentialsError(Exception):
    pass


@dataclass(frozen=True)
class User:
    id: int
    username: str
    api_key: str
    password_hash: str
    created_at: datetime | None = None


def hash_password(password: str, salt: bytes | None = None) -> str:
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt.hex()}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        _, iterations, salt_hex, digest_hex = encoded.split("$")
        digest = hashlib.pbkdf2_hmac(
            "sha256", password.encode(), bytes.fromhex(salt_hex), int(iterations)
        )
    except ValueError:
        return False
    return hmac.compare_digest(digest.hex(), digest_hex)


def _row_to_user(row: dict[str, Any] | None) -> User | None:
    if not row:
        return None
    return User(
        id=row["id"],
        username=row["username"],
        api_key=row["api_key"],
        password_hash=row["password_hash"],
        created_at=row.get("created_at"),
    )


class PostgresUserStore(PostgresStore):
    _COLUMNS = "id, username, api_key, password_hash, created_at"

    def find_by_username(self, username: str) -> User | None:
        row = self._run(
            f"SELECT {self._COLUMNS} FROM users WHERE username = %s", (username,), fetch="one"
        )
        return _row_to_user(row)

    def find_by_api_key(self, api_key: str) -> User | None:
        row = self._run(
            f"SELECT {self._COLUMNS} FROM users WHERE api_key = %s", (api_key,), fetch="one"
        )
        return _row_to_user(row)

    def find_by_id(self, user_id: int) -> User | None:
        row = self._run(
            f"SELECT {self._COLUMNS} FROM users WHERE id = %s", (user_id,), fetch="one"
        )
        return _row_to_user(row)

    def create(self, username: str, password_hash: str, api_key: str) -> User:
        try:
            row = self._run(
                f"""
                INSERT INTO users (username, password_hash, api_key)
                VALUES (%s, %s, %s)
                RETURNING {self._COLUMNS}
                """,
                (username, password_hash, api_key),
                fetch="one",
                commit=True,
            )
        except psycopg2.errors.UniqueViolation as e:
            raise UsernameTakenError("Username already exists") from e
        return _row_to_user(row)


class AuthService:
    def __init__(self, users):
        self._users = users

    def register(self, username: str, password: str) -> User:
        if self._users.find_by_username(username) is not None:
            raise UsernameTakenError("Username already exists")
        return self._users.create(username, hash_password(password), str(uuid.uuid4()))

    def login(self, username: str, password: str) -> User:
        user = self._users.find_by_username(username)
        if user is None or not verify_password(password, user.password_hash):
            raise InvalidCredentialsError("Invalid credentials")
        return user

    def authenticate(self, api_key: str | None) -> User | None:
        if not api_key:
            return None
        return self._users.find_by_api_key(api_key)

    def get_user(self, user_id: int) -> User | None:
        return self._users.find_by_id(user_id)
