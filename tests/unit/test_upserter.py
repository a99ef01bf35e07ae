from __future__ import annotations

from datetime import timedelta

import pytest

from studio_signals.errors import ConstraintViolation
from studio_signals.rules import NoShowRiskRule
from studio_signals.upserter import SignalUpserter
from tests.fakes import TODAY, InMemoryDatabase, days_ago


def _run_no_show(db: InMemoryDatabase, owner_id, settings) -> tuple[int, int]:
    rule = NoShowRiskRule()
    with db.unit_of_work() as store:
        snapshot = rule.fetch(store, owner_id, TODAY)
        upserter = SignalUpserter(store)
        totals = [0, 0]
        for finding in rule.evaluate(snapshot, settings):
            tasks, notifications = upserter.apply(owner_id, rule, finding, TODAY)
            totals[0] += tasks
            totals[1] += notifications
    return totals[0], totals[1]


def test_apply_writes_task_and_notification(db, owner_id, default_settings) -> None:
    client = db.add_client(owner_id, "Anna")
    db.add_sessions(client, days_ago(1, 2), status="no_show")

    assert _run_no_show(db, owner_id, default_settings) == (1, 1)

    (task,) = db.tasks_for(owner_id)
    assert task.rule_key == "no_show_risk"
    assert task.priority == "high"
    assert task.status == "open"
    assert task.due_date == TODAY
    assert task.title == "No-show risk"
    (notification,) = db.notifications_for(owner_id)
    assert notification.type == "no_show_risk"
    assert notification.created_for_date == TODAY
    assert notification.is_read is False


def test_rerun_updates_in_place_and_keeps_status(db, owner_id, default_settings) -> None:
    client = db.add_client(owner_id, "Anna")
    db.add_sessions(client, days_ago(1, 2), status="no_show")
    _run_no_show(db, owner_id, default_settings)
    key = (owner_id, client.id, "no_show_risk", TODAY)
    db.set_task_status(key, "done")
    first_updated_at = db.tasks[key].updated_at

    db.now += timedelta(hours=2)
    db.add_sessions(client, days_ago(3), status="no_show")
    assert _run_no_show(db, owner_id, default_settings) == (1, 1)

    tasks = db.tasks_for(owner_id)
    assert len(tasks) == 1
    assert tasks[0].status == "done"
    assert tasks[0].updated_at > first_updated_at
    assert "3 no-shows" in tasks[0].details


def test_rerun_same_day_rearms_notification(db, owner_id, default_settings) -> None:
    client = db.add_client(owner_id, "Anna")
    db.add_sessions(client, days_ago(1, 2), status="no_show")
    _run_no_show(db, owner_id, default_settings)
    key = (owner_id, client.id, "no_show_risk", TODAY)
    db.mark_read(key)

    _run_no_show(db, owner_id, default_settings)

    (notification,) = db.notifications_for(owner_id)
    assert notification.is_read is False
    assert notification.read_at is None


def test_notification_failure_propagates_and_discards_task(
    db, owner_id, default_settings
) -> None:
    client = db.add_client(owner_id, "Anna")
    db.add_sessions(client, days_ago(1, 2), status="no_show")
    db.fail_on["upsert_notification"] = ConstraintViolation("duplicate key")

    with pytest.raises(ConstraintViolation):
        _run_no_show(db, owner_id, default_settings)

    assert db.tasks_for(owner_id) == []
    assert db.notifications_for(owner_id) == []
    assert db.rollbacks == 1
