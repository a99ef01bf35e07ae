"""
Infrastructure package for Studio Signals.

Centralizes database connectivity (connection factory, pooling) and the
PostgreSQL store. Keep this layer focused on I/O and resource management,
decoupled from rule/orchestrator logic.
"""

from studio_signals.infrastructure.db_factory import (
    PoolManager,
    build_dsn,
    get_sync_connection,
)
from studio_signals.infrastructure.repository import PostgresStudioStore, postgres_unit_of_work

__all__ = [
    "PoolManager",
    "PostgresStudioStore",
    "build_dsn",
    "get_sync_connection",
    "postgres_unit_of_work",
]
