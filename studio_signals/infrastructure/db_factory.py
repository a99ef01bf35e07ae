"""
Database connection factory utilities for Studio Signals.

Provides centralized management of PostgreSQL connections and the shared
connection pool with proper lifecycle management. The PoolManager singleton
ensures the pool is cleaned up on application exit; many owners can refresh
concurrently, each borrowing its own pooled connection.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

import atexit
import threading
from contextlib import contextmanager
from typing import Generator, Optional

import psycopg
from psycopg import Connection, Cursor
from psycopg_pool import ConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from studio_signals.config import get_settings
from studio_signals.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn() -> str:
    """Compose a DSN string from settings."""
    settings = get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


def apply_statement_timeout(cur: Cursor, timeout_ms: int) -> None:
    """
    Limit every statement in the current transaction to ``timeout_ms``.

    Uses ``set_config(..., is_local => true)`` so the limit ends with the
    transaction and never leaks into the next borrower of a pooled connection.
    A value of 0 leaves the server default in place.
    """
    if timeout_ms > 0:
        cur.execute("SELECT set_config('statement_timeout', %s, true)", (str(timeout_ms),))


def apply_time_zone(cur: Cursor, time_zone: Optional[str]) -> None:
    """Set the transaction-local ``TimeZone`` that ``now()`` and ``current_date`` use."""
    if time_zone:
        cur.execute("SELECT set_config('TimeZone', %s, true)", (time_zone,))


class PoolManager:
    """
    Thread-safe singleton for managing the database connection pool.

    Handles lifecycle management with automatic cleanup via atexit hook.
    """

    _instance: Optional["PoolManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PoolManager":
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._sync_pool = None
                atexit.register(cls._instance.close_all)
            return cls._instance

    def get_sync_pool(self, min_size: int = 1, max_size: int = 10) -> ConnectionPool:
        """
        Get or create the synchronous connection pool.

        Parameters
        ----------
        min_size : int
            Minimum number of idle connections to keep.
        max_size : int
            Maximum total connections in the pool.

        Returns
        -------
        ConnectionPool
            The managed pool instance.
        """
        with self._lock:
            if self._sync_pool is None:
                self._sync_pool = ConnectionPool(
                    conninfo=build_dsn(), min_size=min_size, max_size=max_size, open=True
                )
                log.debug(
                    "Connection pool opened", extra={"min_size": min_size, "max_size": max_size}
                )
            return self._sync_pool

    @contextmanager
    def sync_connection(self) -> Generator[Connection, None, None]:
        """
        Context manager for obtaining a connection from the pool.

        Example
        -------
            manager = PoolManager()
            with manager.sync_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
        """
        settings = get_settings()
        pool = self.get_sync_pool(
            min_size=settings.db_pool_min_size, max_size=settings.db_pool_max_size
        )
        with pool.connection() as conn:
            yield conn

    def close_all(self) -> None:
        """
        Close the managed pool and release resources.

        This is called automatically on exit via atexit hook.
        """
        with self._lock:
            if self._sync_pool is not None:
                try:
                    self._sync_pool.close()
                except psycopg.Error:
                    log.warning("Error while closing connection pool", exc_info=True)
                finally:
                    self._sync_pool = None


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def get_sync_connection(dsn: Optional[str] = None) -> Connection:
    """
    Acquire a dedicated synchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.
    Use this for one-off operations (schema setup, seeding). Prefer the pool for
    refreshes.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return psycopg.connect(dsn or build_dsn())


__all__ = [
    "PoolManager",
    "apply_statement_timeout",
    "apply_time_zone",
    "build_dsn",
    "get_sync_connection",
]
