from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest

from studio_signals.domain.models import AutomationSettings
from studio_signals.rules import (
    AttendanceDropRule,
    NoShowRiskRule,
    PendingUnpaidRiskRule,
    available_rules,
    default_rules,
)
from studio_signals.rules.abstract import (
    RuleSnapshot,
    SignalRule,
    month_bounds,
    previous_window,
    trailing_window,
)
from studio_signals.rules.attendance_drop import is_attendance_drop
from studio_signals.rules.pending_unpaid import pending_lessons
from tests.fakes import TODAY, InMemoryDatabase, days_ago

MONTH_START = date(2026, 3, 1)


def _evaluate(rule, db: InMemoryDatabase, owner_id, settings: AutomationSettings):
    with db.unit_of_work() as store:
        snapshot = rule.fetch(store, owner_id, TODAY)
    return rule.evaluate(snapshot, settings)


def test_registry_order_is_fixed() -> None:
    assert available_rules() == ["no_show_risk", "attendance_drop", "pending_unpaid_risk"]
    rules = default_rules()
    assert [type(r) for r in rules] == [NoShowRiskRule, AttendanceDropRule, PendingUnpaidRiskRule]
    assert all(isinstance(r, SignalRule) for r in rules)


def test_windows() -> None:
    assert trailing_window(TODAY) == (date(2026, 2, 18), TODAY)
    assert previous_window(TODAY) == (date(2026, 1, 21), date(2026, 2, 17))
    assert month_bounds(TODAY) == (MONTH_START, date(2026, 4, 1))
    assert month_bounds(date(2026, 12, 31)) == (date(2026, 12, 1), date(2027, 1, 1))


class TestNoShowRisk:
    def test_one_below_threshold_is_not_flagged(self, db, owner_id, default_settings) -> None:
        client = db.add_client(owner_id, "Anna")
        db.add_sessions(client, days_ago(3), status="no_show")

        assert _evaluate(NoShowRiskRule(), db, owner_id, default_settings) == []

    def test_threshold_reached_is_flagged_high(self, db, owner_id, default_settings) -> None:
        client = db.add_client(owner_id, "Anna")
        db.add_sessions(client, days_ago(3, 10), status="no_show")

        findings = _evaluate(NoShowRiskRule(), db, owner_id, default_settings)

        assert len(findings) == 1
        assert findings[0].client_id == client.id
        assert findings[0].rule_key == "no_show_risk"
        assert findings[0].metrics == {"no_show_count": 2}
        assert NoShowRiskRule.priority == "high"

    def test_window_is_inclusive_of_day_28(self, db, owner_id, default_settings) -> None:
        inside = db.add_client(owner_id, "Inside")
        outside = db.add_client(owner_id, "Outside")
        db.add_sessions(inside, days_ago(0, 28), status="no_show")
        db.add_sessions(outside, days_ago(1, 29), status="no_show")

        findings = _evaluate(NoShowRiskRule(), db, owner_id, default_settings)

        assert [f.client_id for f in findings] == [inside.id]

    def test_custom_threshold_and_other_statuses(self, db, owner_id) -> None:
        client = db.add_client(owner_id, "Anna")
        db.add_sessions(client, days_ago(1, 2), status="no_show")
        db.add_sessions(client, days_ago(3, 4, 5), status="canceled")
        settings = AutomationSettings(owner_id=owner_id, no_show_threshold=3)

        assert _evaluate(NoShowRiskRule(), db, owner_id, settings) == []

    def test_inactive_clients_are_skipped(self, db, owner_id, default_settings) -> None:
        client = db.add_client(owner_id, "Gone", is_active=False)
        db.add_sessions(client, days_ago(1, 2, 3), status="no_show")

        assert _evaluate(NoShowRiskRule(), db, owner_id, default_settings) == []

    def test_rendering_mentions_client_and_count(self, db, owner_id, default_settings) -> None:
        client = db.add_client(owner_id, "Anna")
        db.add_sessions(client, days_ago(1, 2), status="no_show")
        rule = NoShowRiskRule()
        finding = _evaluate(rule, db, owner_id, default_settings)[0]

        assert rule.task_details(finding) == "Client Anna has 2 no-shows in the last 28 days."
        assert rule.notification_body(finding) == "Anna: 2 no-shows in the last 28 days."


class TestAttendanceDrop:
    def _client_with(self, db, owner_id, name: str, recent: int, previous: int):
        client = db.add_client(owner_id, name)
        db.add_sessions(client, days_ago(*range(1, recent + 1)))
        db.add_sessions(client, days_ago(*range(30, 30 + previous)))
        return client

    def test_halved_attendance_is_flagged(self, db, owner_id, default_settings) -> None:
        client = self._client_with(db, owner_id, "Halved", recent=5, previous=10)

        findings = _evaluate(AttendanceDropRule(), db, owner_id, default_settings)

        assert len(findings) == 1
        assert findings[0].client_id == client.id
        assert findings[0].metrics == {"recent": 5, "previous": 10}

    def test_above_ratio_is_not_flagged(self, db, owner_id, default_settings) -> None:
        self._client_with(db, owner_id, "Steady-ish", recent=6, previous=10)

        assert _evaluate(AttendanceDropRule(), db, owner_id, default_settings) == []

    def test_no_baseline_is_never_flagged(self, db, owner_id, default_settings) -> None:
        self._client_with(db, owner_id, "New", recent=0, previous=0)
        self._client_with(db, owner_id, "Newer", recent=3, previous=0)

        assert _evaluate(AttendanceDropRule(), db, owner_id, default_settings) == []

    def test_window_boundaries(self, db, owner_id, default_settings) -> None:
        # Day 28 belongs to the recent window, day 56 to the previous one, day 57 to neither.
        client = db.add_client(owner_id, "Edges")
        db.add_sessions(client, days_ago(28))
        db.add_sessions(client, days_ago(29, 40, 56, 57))

        findings = _evaluate(AttendanceDropRule(), db, owner_id, default_settings)

        assert findings[0].metrics == {"recent": 1, "previous": 3}

    def test_only_attended_sessions_count(self, db, owner_id, default_settings) -> None:
        client = db.add_client(owner_id, "NoShows")
        db.add_sessions(client, days_ago(30, 31))
        db.add_sessions(client, days_ago(1, 2, 3), status="no_show")

        findings = _evaluate(AttendanceDropRule(), db, owner_id, default_settings)

        assert findings[0].metrics == {"recent": 0, "previous": 2}

    @pytest.mark.parametrize(
        ("recent", "previous", "ratio", "expected"),
        [
            (5, 10, Decimal("0.50"), True),
            (6, 10, Decimal("0.50"), False),
            (0, 1, Decimal("0.50"), True),
            (2, 10, Decimal("0.29"), True),
            (3, 10, Decimal("0.29"), False),
            (29, 100, Decimal("0.29"), True),
            (10, 10, Decimal("1.00"), True),
            (7, 0, Decimal("1.00"), False),
        ],
    )
    def test_ratio_floor(self, recent, previous, ratio, expected) -> None:
        assert is_attendance_drop(recent, previous, ratio) is expected


class TestPendingUnpaid:
    def test_pending_at_threshold_is_flagged(self, db, owner_id, default_settings) -> None:
        client = db.add_client(owner_id, "Owes")
        db.add_payment(client, MONTH_START, lesson_count=10, paid=False)
        db.add_sessions(client, days_ago(*range(1, 7)))

        findings = _evaluate(PendingUnpaidRiskRule(), db, owner_id, default_settings)

        assert len(findings) == 1
        assert findings[0].metrics == {"pending": 4}
        assert PendingUnpaidRiskRule.priority == "medium"

    def test_pending_below_threshold_is_not_flagged(self, db, owner_id, default_settings) -> None:
        client = db.add_client(owner_id, "Nearly done")
        db.add_payment(client, MONTH_START, lesson_count=10, paid=False)
        db.add_sessions(client, days_ago(*range(1, 8)))

        assert _evaluate(PendingUnpaidRiskRule(), db, owner_id, default_settings) == []

    def test_paid_packages_are_never_flagged(self, db, owner_id, default_settings) -> None:
        client = db.add_client(owner_id, "Paid")
        db.add_payment(client, MONTH_START, lesson_count=20, paid=True)

        assert _evaluate(PendingUnpaidRiskRule(), db, owner_id, default_settings) == []

    def test_previous_month_sessions_do_not_count(self, db, owner_id, default_settings) -> None:
        client = db.add_client(owner_id, "Owes")
        db.add_payment(client, MONTH_START, lesson_count=5, paid=False)
        db.add_sessions(client, [date(2026, 2, 27), date(2026, 2, 28)])
        db.add_sessions(client, [date(2026, 3, 2)], status="no_show")

        findings = _evaluate(PendingUnpaidRiskRule(), db, owner_id, default_settings)

        assert findings[0].metrics == {"pending": 5}

    def test_previous_month_payment_is_ignored(self, db, owner_id, default_settings) -> None:
        client = db.add_client(owner_id, "Old debt")
        db.add_payment(client, date(2026, 2, 1), lesson_count=12, paid=False)

        assert _evaluate(PendingUnpaidRiskRule(), db, owner_id, default_settings) == []

    def test_inactive_client_with_unpaid_package_is_flagged(
        self, db, owner_id, default_settings
    ) -> None:
        client = db.add_client(owner_id, "Paused", is_active=False)
        db.add_payment(client, MONTH_START, lesson_count=8, paid=False)

        findings = _evaluate(PendingUnpaidRiskRule(), db, owner_id, default_settings)

        assert [f.client_id for f in findings] == [client.id]

    def test_pending_lessons(self) -> None:
        assert pending_lessons(10, 6) == 4
        assert pending_lessons(10, 12) == 0
        assert pending_lessons(None, 0) == 0


def test_rules_never_see_other_owners(db, owner_id, other_owner_id, default_settings) -> None:
    mine = db.add_client(owner_id, "Mine")
    theirs = db.add_client(other_owner_id, "Theirs")
    db.add_sessions(theirs, days_ago(1, 2, 3), status="no_show")
    # A session tagged with another owner never counts toward this owner's client.
    db.attendance.append(
        db.attendance[-1].model_copy(update={"id": uuid.uuid4(), "client_id": mine.id})
    )

    for rule in default_rules():
        assert _evaluate(rule, db, owner_id, default_settings) == []
    assert {owner for _, owner in db.reads} == {owner_id}
