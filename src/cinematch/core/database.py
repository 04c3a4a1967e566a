from __future__ import annotations

import logging
import math
import random
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, TypeVar

import psycopg
from psycopg import errors as pg_errors
from psycopg.conninfo import conninfo_to_dict
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

from cinematch.core.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Managed Postgres providers that refuse plaintext connections, even from local dev.
MANAGED_HOST_SUFFIXES: tuple[str, ...] = ("neon.tech",)

_PREVIEW_CHARS = 50


class DatabaseUnavailable(RuntimeError):
    pass


@dataclass(frozen=True)
class QueryResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0

    def first(self) -> dict[str, Any] | None:
        return self.rows[0] if self.rows else None


@dataclass(frozen=True)
class ConnectionState:
    connected: bool = False
    last_error: str | None = None
    checked_at: float | None = None


def _preview(text: str) -> str:
    return " ".join(text.split())[:_PREVIEW_CHARS] + "..."


def database_host(database_url: str | None) -> str | None:
    if not database_url:
        return None
    try:
        return conninfo_to_dict(database_url).get("host")
    except psycopg.ProgrammingError:
        return None


def ssl_mode(settings: Settings) -> str | None:
    """Return the sslmode to enforce, or None to leave libpq's default.

    TLS is required for managed cloud hosts, when PG_FORCE_SSL=true, and in
    production.
    """

    host = (database_host(settings.database_url) or "").lower()
    managed = any(
        h.strip().endswith(suffix) for h in host.split(",") for suffix in MANAGED_HOST_SUFFIXES
    )
    if managed or settings.force_ssl or settings.is_production:
        return "require"
    return None


def create_pool(settings: Settings) -> ConnectionPool:
    kwargs: dict[str, Any] = {
        # libpq only accepts whole seconds here.
        "connect_timeout": max(1, math.ceil(settings.connect_timeout_ms / 1000)),
    }
    sslmode = ssl_mode(settings)
    if sslmode:
        kwargs["sslmode"] = sslmode

    max_size = max(1, settings.pool_max)
    return ConnectionPool(
        settings.database_url or "",
        min_size=1,
        max_size=max_size,
        max_idle=settings.idle_timeout_ms / 1000,
        timeout=settings.connect_timeout_ms / 1000,
        kwargs=kwargs,
        name="cinematch",
        open=False,
    )


class PoolWrapper:
    """Owns the process-wide connection pool and its connectivity state.

    Nothing here raises on connection problems: the wrapper stays "not connected"
    and callers degrade instead. `state` is only changed by `test_connection()`
    and `shutdown()`.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        pool_factory: Callable[[Settings], Any] = create_pool,
    ) -> None:
        self._settings = settings
        self._pool_factory = pool_factory
        self._pool: Any | None = None
        self._state = ConnectionState()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state.connected

    def connect(self) -> None:
        if self._pool is not None:
            return

        if not self._settings.database_url:
            logger.warning("DATABASE_URL is not set; running without database functionality")
            return

        try:
            pool = self._pool_factory(self._settings)
            pool.open(wait=False)
        except Exception as e:
            logger.warning("Could not create database pool: %s", e)
            return
        self._pool = pool

    def test_connection(self) -> bool:
        if self._pool is None:
            self._state = ConnectionState(
                connected=False, last_error="pool not created", checked_at=time.time()
            )
            return False

        try:
            with self._pool.connection():
                pass
        except Exception as e:
            logger.warning("Database connection failed: %s", e)
            logger.info("Server will continue without database functionality")
            # Stop the pool's background workers from retrying an unreachable host.
            self._close_pool()
            self._state = ConnectionState(
                connected=False, last_error=str(e), checked_at=time.time()
            )
            return False

        logger.info("Successfully connected to PostgreSQL database")
        self._state = ConnectionState(connected=True, checked_at=time.time())
        return True

    @contextmanager
    def connection(self) -> Iterator[Any]:
        if self._pool is None:
            raise DatabaseUnavailable("Database not available")
        with self._pool.connection() as conn:
            yield conn

    def acquire(self) -> Any:
        if self._pool is None:
            raise DatabaseUnavailable("Database not available")
        return self._pool.getconn()

    def release(self, conn: Any) -> None:
        if self._pool is not None:
            self._pool.putconn(conn)
            return

        logger.warning("Connection released after pool shutdown; closing it")
        conn.close()

    def _close_pool(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            pool.close()

    def shutdown(self) -> None:
        if self._pool is None:
            return

        logger.info("Closing database connections...")
        try:
            self._close_pool()
        finally:
            self._state = ConnectionState(connected=False, checked_at=time.time())
        logger.info("Database connections closed.")


class Database:
    """Query facade over `PoolWrapper`.

    Store errors are logged and answered with an empty `QueryResult`; callers
    never see an exception from `query()`. Use `transaction()` when a statement
    failure must abort (and surface from) a multi-statement unit of work.
    """

    def __init__(self, settings: Settings, *, pool: PoolWrapper | None = None) -> None:
        self._settings = settings
        self._pool = pool or PoolWrapper(settings)

    @property
    def state(self) -> ConnectionState:
        return self._pool.state

    @property
    def is_connected(self) -> bool:
        return self._pool.connected

    def connect(self) -> bool:
        self._pool.connect()
        return self._pool.test_connection()

    def query(self, text: str, params: Sequence[Any] = ()) -> QueryResult:
        if not self._pool.connected:
            logger.warning("Database not available, skipping query: %s", _preview(text))
            return QueryResult()

        start = time.perf_counter()
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(text, params)
                    rows = cur.fetchall() if cur.description is not None else []
                    row_count = cur.rowcount if cur.rowcount >= 0 else len(rows)
        except Exception as e:
            logger.error("Database query error: %s (query: %s)", e, _preview(text))
            return QueryResult()

        if self._settings.is_development:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.info(
                "Executed query: %s duration=%.1fms rows=%d",
                _preview(text),
                duration_ms,
                row_count,
            )
        return QueryResult(rows=list(rows), row_count=row_count)

    def get_client(self) -> Any:
        """Check out a dedicated connection. Pair every call with `release_client`."""
        if not self._pool.connected:
            raise DatabaseUnavailable("Database not available")
        try:
            return self._pool.acquire()
        except PoolTimeout as e:
            raise DatabaseUnavailable("Database not available") from e

    def release_client(self, conn: Any) -> None:
        self._pool.release(conn)

    @contextmanager
    def client(self) -> Iterator[Any]:
        conn = self.get_client()
        try:
            yield conn
        finally:
            self.release_client(conn)

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        with self.client() as conn:
            # Commits on clean exit, rolls back and re-raises otherwise.
            with conn.transaction():
                yield conn

    def run_in_transaction(self, operation: Callable[[Any], T], *, max_retries: int = 3) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                with self.transaction() as conn:
                    return operation(conn)
            except pg_errors.DeadlockDetected as e:
                if attempt >= max_retries:
                    raise
                logger.warning("Transaction attempt %d deadlocked, retrying: %s", attempt, e)
                time.sleep(random.random())

    def shutdown(self) -> None:
        # A failed connectivity test has already closed the pool.
        if self._pool.connected:
            self._pool.shutdown()
