"""
Attendance drop: clients whose attendance over the last 28 days fell to a
fraction of the 28 days before.

A client is flagged when ``previous > 0`` and
``recent <= floor(previous * attendance_drop_ratio)``. Clients with no
attended sessions in the previous window have no baseline and are never
flagged, so new clients do not trigger alerts.
"""

from __future__ import annotations

import math
from datetime import date
from decimal import Decimal
from typing import List
from uuid import UUID

from studio_signals.domain.models import AutomationSettings, Finding
from studio_signals.domain.ports import HistoricalDataReader
from studio_signals.rules.abstract import (
    AbstractSignalRule,
    RuleSnapshot,
    count_by_client,
    previous_window,
    trailing_window,
)


def is_attendance_drop(recent: int, previous: int, ratio: Decimal) -> bool:
    """True when attendance fell to ``floor(previous * ratio)`` or below."""
    if previous <= 0:
        return False
    return recent <= math.floor(Decimal(previous) * Decimal(ratio))


class AttendanceDropRule(AbstractSignalRule):
    """
    Medium-priority follow-up for clients who are attending much less often.
    """

    rule_key: str = "attendance_drop"
    description: str = "Attended sessions fell to the configured ratio of the previous 28 days."
    priority = "medium"
    enabled_flag: str = "attendance_drop_enabled"
    task_title: str = "Attendance drop"
    notification_title: str = "Attendance falling"

    def fetch(self, reader: HistoricalDataReader, owner_id: UUID, today: date) -> RuleSnapshot:
        date_from, _ = previous_window(today)
        _, date_to = trailing_window(today)
        return RuleSnapshot(
            owner_id=owner_id,
            today=today,
            clients=reader.list_active_clients(owner_id),
            attendance=reader.list_attendance(owner_id, date_from, date_to, status="attended"),
        )

    def evaluate(self, snapshot: RuleSnapshot, settings: AutomationSettings) -> List[Finding]:
        recent_counts = count_by_client(
            snapshot.attendance, "attended", *trailing_window(snapshot.today)
        )
        previous_counts = count_by_client(
            snapshot.attendance, "attended", *previous_window(snapshot.today)
        )

        findings: List[Finding] = []
        for client in snapshot.clients:
            recent = recent_counts[client.id]
            previous = previous_counts[client.id]
            if is_attendance_drop(recent, previous, settings.attendance_drop_ratio):
                findings.append(self._finding(client, recent=recent, previous=previous))
        return self._sorted(findings)

    def task_details(self, finding: Finding) -> str:
        return (
            f"Client {finding.client_name} has {finding.metrics['recent']} attended sessions "
            f"(previous 28 days: {finding.metrics['previous']})."
        )

    def notification_body(self, finding: Finding) -> str:
        return (
            f"{finding.client_name}: {finding.metrics['recent']} now versus "
            f"{finding.metrics['previous']} in the previous 28 days."
        )


__all__ = ["AttendanceDropRule", "is_attendance_drop"]
