"""
No-show risk: clients who repeatedly skip booked sessions without cancelling.

Counts ``no_show`` sessions per active client over the trailing 28 days
(inclusive on both ends) and flags clients at or above the owner's
``no_show_threshold``.
"""

from __future__ import annotations

from datetime import date
from typing import List
from uuid import UUID

from studio_signals.domain.models import AutomationSettings, Finding
from studio_signals.domain.ports import HistoricalDataReader
from studio_signals.rules.abstract import (
    AbstractSignalRule,
    RuleSnapshot,
    count_by_client,
    trailing_window,
)


class NoShowRiskRule(AbstractSignalRule):
    """
    High-priority follow-up for clients with too many recent no-shows.
    """

    rule_key: str = "no_show_risk"
    description: str = "No-shows in the last 28 days reach the configured threshold."
    priority = "high"
    enabled_flag: str = "no_show_risk_enabled"
    task_title: str = "No-show risk"
    notification_title: str = "High-risk client"

    def fetch(self, reader: HistoricalDataReader, owner_id: UUID, today: date) -> RuleSnapshot:
        date_from, date_to = trailing_window(today)
        return RuleSnapshot(
            owner_id=owner_id,
            today=today,
            clients=reader.list_active_clients(owner_id),
            attendance=reader.list_attendance(owner_id, date_from, date_to, status="no_show"),
        )

    def evaluate(self, snapshot: RuleSnapshot, settings: AutomationSettings) -> List[Finding]:
        date_from, date_to = trailing_window(snapshot.today)
        no_shows = count_by_client(snapshot.attendance, "no_show", date_from, date_to)
        findings = [
            self._finding(client, no_show_count=no_shows[client.id])
            for client in snapshot.clients
            if no_shows[client.id] >= settings.no_show_threshold
        ]
        return self._sorted(findings)

    def task_details(self, finding: Finding) -> str:
        return (
            f"Client {finding.client_name} has {finding.metrics['no_show_count']} "
            f"no-shows in the last 28 days."
        )

    def notification_body(self, finding: Finding) -> str:
        return f"{finding.client_name}: {finding.metrics['no_show_count']} no-shows in the last 28 days."


__all__ = ["NoShowRiskRule"]
