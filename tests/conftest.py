"""
Pytest configuration for Studio Signals.

Provides fixtures for:
- The in-memory studio database and an orchestrator bound to it
- Owner ids
- Settings and DSN for integration tests
"""

from __future__ import annotations

import os
import uuid
from uuid import UUID

import pytest

from studio_signals.config import Settings
from studio_signals.domain.models import AutomationSettings
from studio_signals.orchestrator import RefreshOrchestrator
from tests.fakes import NOW, InMemoryDatabase


@pytest.fixture
def db() -> InMemoryDatabase:
    return InMemoryDatabase(now=NOW)


@pytest.fixture
def owner_id() -> UUID:
    return uuid.uuid4()


@pytest.fixture
def other_owner_id() -> UUID:
    return uuid.uuid4()


@pytest.fixture
def orchestrator(db: InMemoryDatabase) -> RefreshOrchestrator:
    return RefreshOrchestrator(unit_of_work=db.unit_of_work)


@pytest.fixture
def default_settings(owner_id: UUID) -> AutomationSettings:
    return AutomationSettings(owner_id=owner_id)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture for integration tests.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        DB_HOST=os.getenv("DB_HOST", "localhost"),
        DB_PORT=int(os.getenv("DB_PORT", "5432")),
        DB_USER=os.getenv("DB_USER", "postgres"),
        DB_PASSWORD=os.getenv("DB_PASSWORD", "postgres"),
        DB_NAME=os.getenv("DB_NAME", "studio_signals"),
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )
