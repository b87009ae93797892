from unittest.mock import MagicMock

import psycopg2.errors
import pytest

from users import (
    InvalidCredentialsError,
    PostgresUserStore,
    UsernameTakenError,
    hash_password,
    verify_password,
)


def test_password_hash_roundtrip():
    encoded = hash_password("secret1")
    assert encoded.startswith("pbkdf2_sha256$")
    assert "secret1" not in encoded
    assert verify_password("secret1", encoded)
    assert not verify_password("secret2", encoded)


def test_password_hash_is_salted():
    assert hash_password("secret1") != hash_password("secret1")


def test_verify_password_garbage():
    assert not verify_password("secret1", "not-a-hash")


def test_register_and_login(auth):
    user = auth.register("dora", "explorer")
    assert user.api_key
    assert auth.login("dora", "explorer") == user
    assert auth.authenticate(user.api_key) == user
    assert auth.get_user(user.id) == user


def test_register_duplicate(auth):
    auth.register("dora", "explorer")
    with pytest.raises(UsernameTakenError):
        auth.register("dora", "other-one")


@pytest.mark.parametrize("username, password", [("dora", "wrong-pass"), ("nobody", "explorer")])
def test_login_rejects(auth, username, password):
    auth.register("dora", "explorer")
    with pytest.raises(InvalidCredentialsError):
        auth.login(username, password)


@pytest.mark.parametrize("api_key", [None, "", "unknown"])
def test_authenticate_rejects(auth, api_key):
    assert auth.authenticate(api_key) is None


def test_postgres_create_maps_unique_violation():
    mock_conn = MagicMock()
    mock_cursor = MagicMock()
    mock_conn.cursor.return_value.__enter__ = lambda x: mock_cursor
    mock_conn.cursor.return_value.__exit__ = lambda x, y, z, w: None
    mock_cursor.execute.side_effect = psycopg2.errors.UniqueViolation("duplicate key")

    store = PostgresUserStore("dbname=test", connect=MagicMock(return_value=mock_conn))
    with pytest.raises(UsernameTakenError):
        store.create("dora", hash_password("explorer"), "key")
    mock_conn.rollback.assert_called_once()
