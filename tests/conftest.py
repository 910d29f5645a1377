# tests/conftest.py

"""
Pytest configuration and shared fixtures for testing.

FakeSupabase mimics the subset of the supabase-py client the API uses:
table queries with filters, inserts/updates/deletes that return the
affected rows, the `attach_revision` RPC and the auth admin calls.
"""

import copy
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Generator
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from main import create_app
from dependencies.services import get_blob_staging, get_fanout, get_store_client
from models.notification import DispatchReport


# ============================================================
# In-memory Supabase
# ============================================================
class FakeAPIError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


UNIQUE_KEYS = {
    "users": [("email",), ("employee_id",)],
    "push_endpoints": [("user_id", "token")],
}


def _sort_key(value):
    return (value is None, value if value is not None else "")


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.operation = "select"
        self.payload = None
        self.filters = []
        self.ordering = []
        self.row_limit = None

    # ----- operations -----
    def select(self, *columns):
        self.operation = "select"
        return self

    def insert(self, payload):
        self.operation = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.operation = "update"
        self.payload = payload
        return self

    def delete(self):
        self.operation = "delete"
        return self

    # ----- filters -----
    def eq(self, column, value):
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def neq(self, column, value):
        self.filters.append(lambda r: r.get(column) != value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda r: r.get(column) in values)
        return self

    def contains(self, column, values):
        self.filters.append(lambda r: all(v in (r.get(column) or []) for v in values))
        return self

    def is_(self, column, value):
        if value == "null":
            self.filters.append(lambda r: r.get(column) is None)
        else:
            self.filters.append(lambda r: r.get(column) is value)
        return self

    def order(self, column, desc=False):
        self.ordering.append((column, desc))
        return self

    def limit(self, n):
        self.row_limit = n
        return self

    # ----- execution -----
    def _matching(self):
        rows = self.db.tables.setdefault(self.table, [])
        return [r for r in rows if all(f(r) for f in self.filters)]

    def _check_unique(self, row, ignore=None):
        rows = self.db.tables.setdefault(self.table, [])
        for other in rows:
            if other is ignore:
                continue
            if other.get("id") == row.get("id"):
                raise FakeAPIError(f'duplicate key value violates unique constraint "{self.table}_pkey"')
            for key in UNIQUE_KEYS.get(self.table, []):
                values = tuple(row.get(c) for c in key)
                if None not in values and values == tuple(other.get(c) for c in key):
                    raise FakeAPIError(f'duplicate key value violates unique constraint on {key}')

    def execute(self):
        if self.db.fail_tables.get(self.table):
            raise FakeAPIError(self.db.fail_tables[self.table])

        rows = self.db.tables.setdefault(self.table, [])

        if self.operation == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for item in payload:
                row = copy.deepcopy(item)
                row.setdefault("id", str(uuid.uuid4()))
                self._check_unique(row)
                rows.append(row)
                inserted.append(copy.deepcopy(row))
            return SimpleNamespace(data=inserted)

        matching = self._matching()

        if self.operation == "update":
            for row in matching:
                row.update(copy.deepcopy(self.payload))
            return SimpleNamespace(data=copy.deepcopy(matching))

        if self.operation == "delete":
            for row in matching:
                rows.remove(row)
            return SimpleNamespace(data=copy.deepcopy(matching))

        for column, desc in reversed(self.ordering):
            matching = sorted(matching, key=lambda r: _sort_key(r.get(column)), reverse=desc)
        if self.row_limit is not None:
            matching = matching[: self.row_limit]
        return SimpleNamespace(data=copy.deepcopy(matching))


class FakeRpc:
    def __init__(self, db: "FakeSupabase", name: str, params: dict):
        self.db = db
        self.name = name
        self.params = params

    def execute(self):
        if self.name != "attach_revision":
            raise FakeAPIError(f"function {self.name} does not exist")

        for hook in list(self.db.before_attach):
            hook(self.params)

        table = self.params["p_table"]
        expected = self.params["p_expected_latest_id"]
        document = copy.deepcopy(self.params["p_document"])
        rows = self.db.tables.setdefault(table, [])
        family = [
            r for r in rows
            if r.get("site_id") == document["site_id"]
            and r.get("document_number") == document["document_number"]
        ]

        if expected:
            predecessor = next((r for r in family if r["id"] == expected and r.get("is_latest")), None)
            if predecessor is None:
                raise FakeAPIError("stale_latest: predecessor is no longer the latest revision")
            predecessor["is_latest"] = False
        elif any(r.get("is_latest") for r in family):
            raise FakeAPIError("stale_latest: family already has a latest revision")

        rows.append(document)
        self.db.rpc_calls.append(self.name)
        return SimpleNamespace(data=copy.deepcopy(document))


class FakeAuthAdmin:
    def __init__(self, db: "FakeSupabase"):
        self.db = db
        self.fail_create = None

    def create_user(self, attributes: dict):
        if self.fail_create:
            raise FakeAPIError(self.fail_create)
        email = attributes["email"]
        if any(u.email == email for u in self.db.auth_users.values()):
            raise FakeAPIError("A user with this email address has already been registered")
        user = SimpleNamespace(id=str(uuid.uuid4()), email=email, password=attributes.get("password"))
        self.db.auth_users[user.id] = user
        return SimpleNamespace(user=user)

    def delete_user(self, user_id: str):
        self.db.auth_users.pop(user_id, None)


class FakeAuth:
    def __init__(self, db: "FakeSupabase"):
        self.db = db
        self.admin = FakeAuthAdmin(db)

    def get_user(self, token: str):
        user_id = self.db.tokens.get(token)
        if user_id is None:
            raise FakeAPIError("invalid JWT")
        user = self.db.auth_users.get(user_id) or SimpleNamespace(id=user_id, email=None)
        return SimpleNamespace(user=user)

    def sign_in_with_password(self, credentials: dict):
        for user in self.db.auth_users.values():
            if user.email == credentials["email"] and user.password == credentials["password"]:
                token = f"token-{user.id}"
                self.db.tokens[token] = user.id
                return SimpleNamespace(session=SimpleNamespace(access_token=token))
        raise FakeAPIError("Invalid login credentials")


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.tokens = {}
        self.auth_users = {}
        self.fail_tables = {}
        self.before_attach = []
        self.rpc_calls = []
        self.auth = FakeAuth(self)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: dict) -> FakeRpc:
        return FakeRpc(self, name, params)

    def rows(self, table: str):
        return self.tables.setdefault(table, [])

    # ----- seeding helpers -----
    def add_site(self, site_id="site-1", short_name="S1", role_settings=None, user_overrides=None):
        row = {
            "id": site_id,
            "name": f"Site {short_name}",
            "short_name": short_name,
            "role_settings": role_settings,
            "user_overrides": user_overrides,
        }
        self.rows("sites").append(row)
        return row

    def add_user(self, user_id, role, sites=("site-1",), status="ACTIVE", email=None, name=None):
        email = email or f"{user_id}@example.com"
        self.auth_users[user_id] = SimpleNamespace(id=user_id, email=email, password="secret123")
        self.tokens[f"token-{user_id}"] = user_id
        row = {
            "id": user_id,
            "email": email,
            "role": role,
            "sites": list(sites),
            "status": status,
            "name": name or user_id,
            "employee_id": f"EMP-{user_id}",
        }
        self.rows("users").append(row)
        return row


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer token-{user_id}"}


# ============================================================
# Fixtures
# ============================================================
@pytest.fixture
def fake_db() -> FakeSupabase:
    db = FakeSupabase()
    db.add_site("site-1", "S1")
    return db


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def mock_fanout():
    fanout = Mock()
    fanout.send.return_value = DispatchReport(success_count=1)
    return fanout


@pytest.fixture
def mock_blobs():
    blobs = Mock()
    blobs.move_to_document.side_effect = lambda user_id, site_id, folder, number, files: [
        {**f, "file_path": f"sites/{site_id}/{folder}/{number}/{f['file_name']}"} for f in files
    ]
    return blobs


@pytest.fixture(scope="function")
def app(fake_db, mock_fanout, mock_blobs):
    """Create a test FastAPI application wired to the in-memory store."""
    application = create_app()
    application.dependency_overrides[get_store_client] = lambda: fake_db
    application.dependency_overrides[get_fanout] = lambda: mock_fanout
    application.dependency_overrides[get_blob_staging] = lambda: mock_blobs
    return application


@pytest.fixture(scope="function")
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI application."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def reset_cache():
    """Reset cache and rate limits before each test."""
    from core.cache import cache_clear
    from core.rate_limiter import reset_rate_limits
    cache_clear()
    reset_rate_limits()
    yield
    cache_clear()
    reset_rate_limits()
