"""
Integration tests for the refresh engine against a real PostgreSQL instance.

These tests verify that:
1. One refresh writes one task and one notification per finding
2. A second refresh on the same day is a no-op
3. Concurrent refreshes for one owner generate each signal exactly once
4. Re-running the rules never touches a task's status

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
"""

from __future__ import annotations

import os
import uuid
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import psycopg
import pytest

from studio_signals.config import Settings
from studio_signals.infrastructure.repository import postgres_unit_of_work
from studio_signals.orchestrator import RefreshOrchestrator

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "db" / "init.sql"
EXPECTED_SIGNALS = 3
CONCURRENT_CALLERS = 4

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
    reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
)


@pytest.fixture(scope="module")
def schema(test_dsn: str) -> str:
    with psycopg.connect(test_dsn, autocommit=True) as conn:
        conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
    return test_dsn


@pytest.fixture
def seeded_owner(schema: str):
    """
    One owner with a no-show client, a fading client and an unpaid package.
    """
    owner_id = uuid.uuid4()
    with psycopg.connect(schema) as conn:
        with conn.cursor() as cur:
            ids = {}
            for name in ("Anna Georgiou", "Nikos Ioannou", "Maria Karali"):
                cur.execute(
                    "INSERT INTO clients (owner_id, full_name) VALUES (%s, %s) RETURNING id",
                    (owner_id, name),
                )
                ids[name] = cur.fetchone()[0]
            sessions = [
                (ids["Anna Georgiou"], 1, "no_show"),
                (ids["Anna Georgiou"], 2, "no_show"),
                (ids["Nikos Ioannou"], 3, "attended"),
                (ids["Nikos Ioannou"], 30, "attended"),
                (ids["Nikos Ioannou"], 35, "attended"),
                (ids["Nikos Ioannou"], 40, "attended"),
                (ids["Nikos Ioannou"], 45, "attended"),
            ]
            cur.executemany(
                """
                INSERT INTO attendance (owner_id, client_id, session_date, status)
                VALUES (%s, %s, current_date - %s::int, %s)
                """,
                [(owner_id, client_id, offset, status) for client_id, offset, status in sessions],
            )
            cur.execute(
                """
                INSERT INTO payments (owner_id, client_id, month_start, lesson_count, paid)
                VALUES (%s, %s, date_trunc('month', current_date)::date, 8, false)
                """,
                (owner_id, ids["Maria Karali"]),
            )
        conn.commit()

    yield owner_id

    with psycopg.connect(schema) as conn:
        for table in ("notifications", "follow_up_tasks", "automation_settings", "clients"):
            conn.execute(f"DELETE FROM {table} WHERE owner_id = %s", (owner_id,))
        conn.commit()


@pytest.fixture
def pg_orchestrator(test_settings: Settings) -> RefreshOrchestrator:
    return RefreshOrchestrator(unit_of_work=lambda: postgres_unit_of_work(test_settings))


def _count(dsn: str, table: str, owner_id: uuid.UUID) -> int:
    with psycopg.connect(dsn) as conn:
        return conn.execute(
            f"SELECT count(*) FROM {table} WHERE owner_id = %s", (owner_id,)
        ).fetchone()[0]


def test_refresh_writes_signals_once_per_day(
    schema: str, seeded_owner: uuid.UUID, pg_orchestrator: RefreshOrchestrator
) -> None:
    first = pg_orchestrator.refresh(seeded_owner, caller_id=seeded_owner)
    second = pg_orchestrator.refresh(seeded_owner, caller_id=seeded_owner)

    assert first.tasks_generated == EXPECTED_SIGNALS
    assert first.notifications_generated == EXPECTED_SIGNALS
    assert not first.skipped
    assert second.skipped
    assert second.tasks_generated == 0
    assert second.refreshed_at == first.refreshed_at
    assert _count(schema, "follow_up_tasks", seeded_owner) == EXPECTED_SIGNALS
    assert _count(schema, "notifications", seeded_owner) == EXPECTED_SIGNALS


def test_concurrent_refreshes_generate_each_signal_once(
    schema: str, seeded_owner: uuid.UUID, pg_orchestrator: RefreshOrchestrator
) -> None:
    with ThreadPoolExecutor(max_workers=CONCURRENT_CALLERS) as pool:
        results = list(
            pool.map(
                lambda _: pg_orchestrator.refresh(seeded_owner, caller_id=seeded_owner),
                range(CONCURRENT_CALLERS),
            )
        )

    assert sum(not r.skipped for r in results) == 1
    assert sum(r.tasks_generated for r in results) == EXPECTED_SIGNALS
    assert _count(schema, "follow_up_tasks", seeded_owner) == EXPECTED_SIGNALS


def test_rerun_keeps_task_status(
    schema: str,
    seeded_owner: uuid.UUID,
    pg_orchestrator: RefreshOrchestrator,
    test_settings: Settings,
) -> None:
    pg_orchestrator.refresh(seeded_owner, caller_id=seeded_owner)
    with postgres_unit_of_work(test_settings) as store:
        task = store.list_tasks(seeded_owner)[0]
        store.update_task_status(seeded_owner, task.id, "done")
    with psycopg.connect(schema) as conn:
        conn.execute(
            "UPDATE automation_settings SET last_refreshed_at = NULL WHERE owner_id = %s",
            (seeded_owner,),
        )
        conn.commit()

    rerun = pg_orchestrator.refresh(seeded_owner, caller_id=seeded_owner)

    assert rerun.tasks_generated == EXPECTED_SIGNALS
    with postgres_unit_of_work(test_settings) as store:
        refreshed = {t.id: t for t in store.list_tasks(seeded_owner)}
    assert len(refreshed) == EXPECTED_SIGNALS
    assert refreshed[task.id].status == "done"
    assert refreshed[task.id].resolved_at is not None
