"""
Shared test fixtures.

MockSupabaseClient is a small in-memory store: query builders filter, sort
and write real rows so that export -> import round trips can be asserted
against table contents.
"""

import os
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings require these before config is imported
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

import copy
import pytest
from types import SimpleNamespace
from unittest.mock import patch
from typing import Generator, Optional

# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """Chainable query builder executed against the client's tables."""

    def __init__(self, client: "MockSupabaseClient", table: str):
        self._client = client
        self._table = table
        self._op = "select"
        self._payload = None
        self._columns = "*"
        self._on_conflict = "id"
        self._filters = []
        self._orders = []
        self._limit = None
        self._count = None

    # --- operations ---

    def select(self, columns: str = "*", count: Optional[str] = None):
        self._op = "select"
        self._columns = columns
        self._count = count
        return self

    def insert(self, data):
        self._op = "insert"
        self._payload = data
        return self

    def upsert(self, data, on_conflict: str = "id"):
        self._op = "upsert"
        self._payload = data
        self._on_conflict = on_conflict
        return self

    def update(self, data):
        self._op = "update"
        self._payload = data
        return self

    def delete(self):
        self._op = "delete"
        return self

    # --- filters ---

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        allowed = list(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def order(self, column, desc: bool = False, **kwargs):
        self._orders.append((column, desc))
        return self

    def limit(self, count):
        self._limit = count
        return self

    # --- execution ---

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self._filters)

    def _project(self, row: dict) -> dict:
        if self._columns.strip() == "*":
            return copy.deepcopy(row)
        columns = [c.strip() for c in self._columns.split(",")]
        return {c: copy.deepcopy(row.get(c)) for c in columns}

    def execute(self) -> MockSupabaseResponse:
        self._client._record(self._table, self._op, self._payload)
        rows = self._client.rows(self._table)

        if self._op == "select":
            selected = [r for r in rows if self._matches(r)]
            for column, desc in reversed(self._orders):
                selected.sort(
                    key=lambda r: (r.get(column) is None, r.get(column) if r.get(column) is not None else ""),
                    reverse=desc,
                )
            if self._limit is not None:
                selected = selected[:self._limit]
            return MockSupabaseResponse([self._project(r) for r in selected])

        if self._op == "insert":
            items = self._payload if isinstance(self._payload, list) else [self._payload]
            for item in items:
                if any(r.get("id") == item.get("id") for r in rows if item.get("id")):
                    raise Exception(f"duplicate key value violates unique constraint \"{self._table}_pkey\"")
            rows.extend(copy.deepcopy(items))
            return MockSupabaseResponse(copy.deepcopy(items))

        if self._op == "upsert":
            items = self._payload if isinstance(self._payload, list) else [self._payload]
            keys = [k.strip() for k in self._on_conflict.split(",")]
            for item in items:
                existing = next(
                    (r for r in rows if all(r.get(k) == item.get(k) for k in keys)),
                    None
                )
                if existing is not None:
                    existing.update(copy.deepcopy(item))
                else:
                    rows.append(copy.deepcopy(item))
            return MockSupabaseResponse(copy.deepcopy(items))

        if self._op == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self._payload))
                    updated.append(copy.deepcopy(row))
            return MockSupabaseResponse(updated)

        if self._op == "delete":
            removed = [r for r in rows if self._matches(r)]
            self._client._tables[self._table] = [r for r in rows if not self._matches(r)]
            return MockSupabaseResponse(copy.deepcopy(removed))

        raise AssertionError(f"unsupported operation {self._op}")


class MockSupabaseTable:
    """Entry point returned by client.table(); every call starts a new query."""

    def __init__(self, client: "MockSupabaseClient", name: str):
        self._client = client
        self._name = name

    def _query(self) -> MockSupabaseQuery:
        return MockSupabaseQuery(self._client, self._name)

    def select(self, *args, **kwargs):
        return self._query().select(*args, **kwargs)

    def insert(self, data):
        return self._query().insert(data)

    def upsert(self, data, **kwargs):
        return self._query().upsert(data, **kwargs)

    def update(self, data):
        return self._query().update(data)

    def delete(self):
        return self._query().delete()


class MockStorageBucket:
    """One storage bucket; objects keyed by path."""

    def __init__(self, storage: "MockStorage", name: str):
        self._storage = storage
        self._name = name

    def upload(self, path: str, file: bytes, file_options: Optional[dict] = None):
        if self._storage.upload_error is not None:
            raise Exception(self._storage.upload_error)
        objects = self._storage.objects.setdefault(self._name, {})
        upsert = str((file_options or {}).get("upsert", "false")).lower() == "true"
        if path in objects and not upsert:
            raise Exception("The resource already exists")
        objects[path] = file
        return SimpleNamespace(path=path)

    def download(self, path: str) -> bytes:
        objects = self._storage.objects.get(self._name, {})
        if path not in objects:
            raise Exception("Object not found")
        return objects[path]

    def get_public_url(self, path: str) -> str:
        return f"https://test.supabase.co/storage/v1/object/public/{self._name}/{path}"


class MockStorage:
    """Mock Supabase storage."""

    def __init__(self):
        self.objects: dict[str, dict[str, bytes]] = {}
        self.upload_error: Optional[str] = None

    def from_(self, bucket: str) -> MockStorageBucket:
        return MockStorageBucket(self, bucket)


class MockAuth:
    """Maps access tokens to users."""

    def __init__(self):
        self.users: dict[str, SimpleNamespace] = {}

    def get_user(self, jwt: str):
        user = self.users.get(jwt)
        if user is None:
            raise Exception("invalid JWT")
        return SimpleNamespace(user=user)


class MockSupabaseClient:
    """In-memory mock Supabase client."""

    def __init__(self):
        self._tables: dict[str, list[dict]] = {}
        self._failures: list[dict] = []
        self.calls: list[tuple[str, str, object]] = []
        self.storage = MockStorage()
        self.auth = MockAuth()

    def set_table_data(self, table_name: str, data: list):
        """Configure rows for a table."""
        self._tables[table_name] = copy.deepcopy(data)

    def rows(self, table_name: str) -> list[dict]:
        """Live row list for a table."""
        return self._tables.setdefault(table_name, [])

    def table(self, name: str) -> MockSupabaseTable:
        return MockSupabaseTable(self, name)

    def add_user(self, token: str, user_id: str, email: Optional[str] = None):
        """Register an access token."""
        self.auth.users[token] = SimpleNamespace(id=user_id, email=email)

    def fail_on(self, table: str, op: str, nth: Optional[int] = None, message: str = "simulated failure"):
        """
        Make a table operation raise.

        Args:
            nth: 1-based occurrence to fail; None fails every occurrence
        """
        self._failures.append({"table": table, "op": op, "nth": nth, "seen": 0, "message": message})

    def calls_for(self, table: str, op: str) -> list:
        return [payload for t, o, payload in self.calls if t == table and o == op]

    def _record(self, table: str, op: str, payload):
        self.calls.append((table, op, copy.deepcopy(payload)))
        for failure in self._failures:
            if failure["table"] != table or failure["op"] != op:
                continue
            failure["seen"] += 1
            if failure["nth"] is None or failure["seen"] == failure["nth"]:
                raise Exception(failure["message"])


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("components", [
                {"id": "1", "team_id": "team-a", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def team_db(mock_supabase) -> MockSupabaseClient:
    """
    Two teams with an admin in each and a plain member in team-a.

    Tokens: "admin-a-token", "admin-b-token", "member-a-token".
    """
    mock_supabase.set_table_data("teams", [
        {"id": "team-a", "name": "Team A"},
        {"id": "team-b", "name": "Team B"},
    ])
    mock_supabase.set_table_data("team_members", [
        {"team_id": "team-a", "user_id": "user-admin-a", "role": "admin"},
        {"team_id": "team-b", "user_id": "user-admin-b", "role": "admin"},
        {"team_id": "team-a", "user_id": "user-member-a", "role": "member"},
    ])
    mock_supabase.add_user("admin-a-token", "user-admin-a", "admin-a@example.com")
    mock_supabase.add_user("admin-b-token", "user-admin-b", "admin-b@example.com")
    mock_supabase.add_user("member-a-token", "user-member-a", "member-a@example.com")
    return mock_supabase


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch get_supabase_client() in every service with the mock.

    Usage:
        def test_something(mock_db, mock_supabase):
            mock_supabase.set_table_data("components", [...])
    """
    targets = [
        "config.database.get_supabase_client",
        "services.component_matcher_service.get_supabase_client",
        "services.conflict_service.get_supabase_client",
        "services.export_service.get_supabase_client",
        "services.import_service.get_supabase_client",
        "services.team_service.get_supabase_client",
        "services.audit_log_service.get_supabase_client",
    ]
    patchers = [patch(t, return_value=mock_supabase) for t in targets]
    for p in patchers:
        p.start()
    try:
        yield mock_supabase
    finally:
        for p in patchers:
            p.stop()


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_mock_db(mock_db):
    """
    FastAPI test client whose services all use the mock store.

    Service singletons are reset so they pick up the patched client.
    """
    from fastapi.testclient import TestClient
    import services.component_matcher_service as matcher_module
    import services.export_service as export_module
    import services.import_service as import_module
    import services.team_service as team_module
    from main import app

    with patch.object(matcher_module, "_matcher_service", None), \
         patch.object(export_module, "_export_service", None), \
         patch.object(import_module, "_import_service", None), \
         patch.object(team_module, "_team_service", None), \
         patch("main.check_connection", return_value={"status": "healthy", "teams_count": 0, "components_count": 0}):
        yield TestClient(app)
