"""
Pending unpaid risk: clients with an unpaid package for the current month who
still have many lessons left to consume.

``pending = max(0, lesson_count - attended_this_month)``; a missing lesson count
counts as zero. Paid packages are never evaluated. Every client with an unpaid
payment row is considered, active or not, since the trigger is the payment.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import List, Optional
from uuid import UUID

from studio_signals.domain.models import AutomationSettings, Finding
from studio_signals.domain.ports import HistoricalDataReader
from studio_signals.rules.abstract import (
    AbstractSignalRule,
    RuleSnapshot,
    count_by_client,
    month_bounds,
)


def pending_lessons(lesson_count: Optional[int], attended: int) -> int:
    return max(0, (lesson_count or 0) - attended)


class PendingUnpaidRiskRule(AbstractSignalRule):
    """
    Medium-priority payment follow-up: unpaid this month with lessons still pending.
    """

    rule_key: str = "pending_unpaid_risk"
    description: str = "Unpaid monthly package with pending lessons at or above the threshold."
    priority = "medium"
    enabled_flag: str = "pending_unpaid_risk_enabled"
    task_title: str = "Unpaid with high pending balance"
    notification_title: str = "Payment follow-up"

    def fetch(self, reader: HistoricalDataReader, owner_id: UUID, today: date) -> RuleSnapshot:
        month_start, next_month_start = month_bounds(today)
        return RuleSnapshot(
            owner_id=owner_id,
            today=today,
            clients=reader.list_clients(owner_id),
            attendance=reader.list_attendance(
                owner_id, month_start, next_month_start - timedelta(days=1), status="attended"
            ),
            payments=reader.list_payments_for_month(owner_id, month_start),
        )

    def evaluate(self, snapshot: RuleSnapshot, settings: AutomationSettings) -> List[Finding]:
        month_start, next_month_start = month_bounds(snapshot.today)
        attended = count_by_client(
            snapshot.attendance, "attended", month_start, next_month_start - timedelta(days=1)
        )
        clients = {client.id: client for client in snapshot.clients}

        findings: List[Finding] = []
        for payment in snapshot.payments:
            if payment.paid or payment.month_start != month_start:
                continue
            client = clients.get(payment.client_id)
            if client is None:
                continue
            pending = pending_lessons(payment.lesson_count, attended[payment.client_id])
            if pending >= settings.pending_lessons_threshold:
                findings.append(self._finding(client, pending=pending))
        return self._sorted(findings)

    def task_details(self, finding: Finding) -> str:
        return (
            f"Client {finding.client_name} has {finding.metrics['pending']} pending lessons "
            f"and is unpaid."
        )

    def notification_body(self, finding: Finding) -> str:
        return f"{finding.client_name}: {finding.metrics['pending']} pending lessons without payment."


__all__ = ["PendingUnpaidRiskRule", "pending_lessons"]
