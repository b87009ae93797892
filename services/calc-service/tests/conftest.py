"""
Fixtures for calc-service: in-memory stores that honour the same contract as
the Postgres ones, plus a TestClient wired to them.
"""
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from config import load_settings
from engine import CalculationRecord, Operation
from main import create_app, limiter
from service import CalculationService
from users import AuthService, User, UsernameTakenError

EPOCH = datetime(2024, 1, 1, tzinfo=UTC)


class InMemoryCalculationStore:
    """Append-only store; created_at strictly increases with insertion order."""

    def __init__(self, users=None):
        self.rows: dict[int, CalculationRecord] = {}
        self.users = users
        self._next_id = 1

    def _view(self, record: CalculationRecord) -> CalculationRecord:
        return CalculationRecord(
            id=record.id,
            user_id=record.user_id,
            value=record.value,
            parent_id=record.parent_id,
            operation=record.operation,
            operand=record.operand,
            created_at=record.created_at,
            username=self._username(record.user_id),
        )

    def _username(self, user_id):
        user = self.users.find_by_id(user_id) if self.users is not None else None
        return user.username if user else None

    def fetch_by_id(self, calc_id):
        record = self.rows.get(calc_id)
        return self._view(record) if record else None

    def fetch_children(self, parent_id):
        return [self._view(r) for r in self.rows.values() if r.parent_id == parent_id]

    def fetch_all_with_usernames(self):
        return [self._view(r) for r in sorted(self.rows.values(), key=lambda r: r.created_at)]

    def fetch_subtree(self, root_id):
        if root_id not in self.rows:
            return []
        result, level = [], [self.rows[root_id]]
        while level:
            result.extend(level)
            ids = {r.id for r in level}
            level = [r for r in self.rows.values() if r.parent_id in ids]
        return [self._view(r) for r in result]

    def insert(self, user_id, value, parent_id=None, operation=None, operand=None):
        record = CalculationRecord(
            id=self._next_id,
            user_id=user_id,
            value=value,
            parent_id=parent_id,
            operation=Operation(operation) if operation is not None else None,
            operand=operand,
            created_at=EPOCH + timedelta(seconds=self._next_id),
        )
        self.rows[record.id] = record
        self._next_id += 1
        return record

    def delete(self, calc_id):
        """Simulates an integrity violation in the backing store."""
        del self.rows[calc_id]


class InMemoryUserStore:
    def __init__(self):
        self.users: dict[int, User] = {}

    def find_by_username(self, username):
        return next((u for u in self.users.values() if u.username == username), None)

    def find_by_api_key(self, api_key):
        return next((u for u in self.users.values() if u.api_key == api_key), None)

    def find_by_id(self, user_id):
        return self.users.get(user_id)

    def create(self, username, password_hash, api_key):
        if self.find_by_username(username):
            raise UsernameTakenError("Username already exists")
        user = User(
            id=len(self.users) + 1,
            username=username,
            api_key=api_key,
            password_hash=password_hash,
            created_at=EPOCH,
        )
        self.users[user.id] = user
        return user


@pytest.fixture
def user_store():
    return InMemoryUserStore()


@pytest.fixture
def store(user_store):
    return InMemoryCalculationStore(user_store)


@pytest.fixture
def service(store):
    return CalculationService(store)


@pytest.fixture
def auth(user_store):
    return AuthService(user_store)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def client(service, auth):
    app = create_app(load_settings(), calculations=service, auth=auth)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def alice(client):
    response = client.post("/api/auth/register", json={"username": "alice", "password": "secret1"})
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def alice_headers(alice):
    return {"X-API-Key": alice["apiKey"]}
