from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

import pytest
from fastapi.testclient import TestClient

from cinematch.api.app import create_app
from cinematch.core import ratings, users
from cinematch.core.config import Settings
from cinematch.core.database import ConnectionState, QueryResult
from cinematch.core.tokens import issue_tokens


class FakeDatabase:
    """In-memory stand-in for `Database`, answering the repositories' SQL constants."""

    def __init__(self, *, connected: bool = True) -> None:
        self.connected = connected
        self.queries: list[tuple[str, tuple[Any, ...]]] = []
        self.users: dict[int, dict[str, Any]] = {}
        self.ratings: dict[tuple[int, int, str], dict[str, Any]] = {}
        self.fail_next: Exception | None = None
        self.shutdown_calls = 0

    @property
    def is_connected(self) -> bool:
        return self.connected

    @property
    def state(self) -> ConnectionState:
        return ConnectionState(connected=self.connected)

    def connect(self) -> bool:
        return self.connected

    def shutdown(self) -> None:
        self.shutdown_calls += 1

    def query(self, text: str, params: tuple[Any, ...] = ()) -> QueryResult:
        self.queries.append((text, tuple(params)))
        if self.fail_next is not None:
            exc, self.fail_next = self.fail_next, None
            raise exc
        if not self.connected:
            return QueryResult()

        now = datetime.now(timezone.utc)
        if text == users.INSERT_USER_SQL:
            email, password_hash, first_name, last_name = params
            if any(u["email"] == email for u in self.users.values()):
                return QueryResult()
            user_id = len(self.users) + 1
            self.users[user_id] = {
                "id": user_id,
                "email": email,
                "password_hash": password_hash,
                "first_name": first_name,
                "last_name": last_name,
                "created_at": now,
            }
            row = {k: v for k, v in self.users[user_id].items() if k != "password_hash"}
            return QueryResult(rows=[row], row_count=1)

        if text == users.SELECT_USER_BY_EMAIL_SQL:
            rows = [dict(u) for u in self.users.values() if u["email"] == params[0]]
            return QueryResult(rows=rows, row_count=len(rows))

        if text == users.SELECT_USER_BY_ID_SQL:
            u = self.users.get(params[0])
            if u is None:
                return QueryResult()
            row = {k: v for k, v in u.items() if k != "password_hash"}
            return QueryResult(rows=[row], row_count=1)

        if text == ratings.COUNT_USER_RATINGS_SQL:
            count = sum(1 for (uid, _, _) in self.ratings if uid == params[0])
            return QueryResult(rows=[{"count": count}], row_count=1)

        if text == ratings.UPSERT_RATING_SQL:
            user_id, movie_id, media_type, movie_title, rating, action = params
            key = (user_id, movie_id, media_type)
            previous = self.ratings.get(key, {})
            row = {
                "movie_id": movie_id,
                "media_type": media_type,
                "movie_title": movie_title or previous.get("movie_title"),
                "rating": rating,
                "action": action,
                "updated_at": now,
            }
            self.ratings[key] = row
            return QueryResult(rows=[dict(row)], row_count=1)

        if text == ratings.LIST_USER_RATINGS_SQL:
            rows = [dict(r) for (uid, _, _), r in self.ratings.items() if uid == params[0]]
            rows.reverse()
            return QueryResult(rows=rows, row_count=len(rows))

        raise AssertionError(f"unexpected query: {text}")

    def count_queries(self, text: str) -> int:
        return sum(1 for q, _ in self.queries if q == text)


class FakeCursor:
    def __init__(self, conn: FakeConnection) -> None:
        self._conn = conn
        self.description: list[tuple[str]] | None = None
        self.rowcount = -1
        self._rows: list[dict[str, Any]] = []

    def __enter__(self) -> FakeCursor:
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def execute(self, text: str, params: Any = ()) -> None:
        self._conn.executed.append((text, tuple(params)))
        if self._conn.pool.execute_error is not None:
            raise self._conn.pool.execute_error
        rows = self._conn.pool.rows_for(text)
        if rows is None:
            self.description = None
            self._rows = []
            self.rowcount = self._conn.pool.affected
        else:
            self.description = [(k,) for k in (rows[0] if rows else {"?": None})]
            self._rows = rows
            self.rowcount = len(rows)

    def fetchall(self) -> list[dict[str, Any]]:
        return list(self._rows)


class FakeConnection:
    def __init__(self, pool: FakePool) -> None:
        self.pool = pool
        self.executed: list[tuple[str, tuple[Any, ...]]] = []
        self.events: list[str] = []
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def cursor(self, **_kwargs: Any) -> FakeCursor:
        return FakeCursor(self)

    def execute(self, text: str, params: Any = ()) -> None:
        self.cursor().execute(text, params)

    @contextmanager
    def transaction(self):
        self.events.append("begin")
        try:
            yield self
        except BaseException:
            self.events.append("rollback")
            raise
        self.events.append("commit")


class FakePool:
    """Shaped like `psycopg_pool.ConnectionPool` for the parts `PoolWrapper` uses."""

    def __init__(self, *, reachable: bool = True) -> None:
        self.reachable = reachable
        self.opened = False
        self.closed = False
        self.checked_out: list[FakeConnection] = []
        self.connections: list[FakeConnection] = []
        self.results: dict[str, list[dict[str, Any]]] = {}
        self.affected = 0
        self.execute_error: Exception | None = None
        self.acquire_error: Exception | None = None

    def rows_for(self, text: str) -> list[dict[str, Any]] | None:
        return self.results.get(text)

    def open(self, wait: bool = True) -> None:
        self.opened = True

    def close(self) -> None:
        self.closed = True

    def _new_connection(self) -> FakeConnection:
        if self.acquire_error is not None:
            raise self.acquire_error
        if not self.reachable:
            raise OSError("connection refused")
        conn = FakeConnection(self)
        self.connections.append(conn)
        return conn

    @contextmanager
    def connection(self, timeout: float | None = None):
        conn = self._new_connection()
        self.checked_out.append(conn)
        try:
            yield conn
        finally:
            self.checked_out.remove(conn)

    def getconn(self, timeout: float | None = None) -> FakeConnection:
        conn = self._new_connection()
        self.checked_out.append(conn)
        return conn

    def putconn(self, conn: FakeConnection) -> None:
        self.checked_out.remove(conn)


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url="postgresql://localhost/cinematch_test", environment="test")


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def client(settings: Settings, fake_db: FakeDatabase) -> TestClient:
    return TestClient(create_app(settings=settings, database=fake_db))


@pytest.fixture
def auth_headers(settings: Settings):
    def _headers(user_id: int, email: str = "user@example.com") -> dict[str, str]:
        tokens = issue_tokens(user_id, email, settings)
        return {"Authorization": f"Bearer {tokens.access_token}"}

    return _headers
