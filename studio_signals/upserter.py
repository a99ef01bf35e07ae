"""
Rule-agnostic signal sink.

Turns each finding into one follow-up task and one notification, written
through natural-key upserts so re-running a rule on the same day updates the
existing rows instead of duplicating them:

- task key ``(owner_id, client_id, rule_key, due_date)``; on conflict only
  title, details, priority and updated_at change, never ``status``.
- notification key ``(owner_id, client_id, type, created_for_date)``; on
  conflict title and body change and ``is_read`` goes back to false.
"""

from __future__ import annotations

from datetime import date
from typing import Optional, Tuple
from uuid import UUID

from studio_signals.domain.models import (
    Finding,
    FollowUpTaskInsert,
    NotificationInsert,
    TaskPriority,
)
from studio_signals.domain.ports import SignalSink
from studio_signals.rules.abstract import SignalRule
from studio_signals.utils.logging import get_logger

log = get_logger(__name__)


class SignalUpserter:
    """
    Writes findings to a SignalSink and reports affected row counts.
    """

    def __init__(self, sink: SignalSink) -> None:
        self._sink = sink

    def upsert_task(
        self,
        owner_id: UUID,
        client_id: UUID,
        rule_key: str,
        title: str,
        details: Optional[str],
        priority: TaskPriority,
        due_date: date,
    ) -> int:
        """Insert or refresh the task for this natural key. Returns affected rows."""
        return self._sink.upsert_task(
            FollowUpTaskInsert(
                owner_id=owner_id,
                client_id=client_id,
                rule_key=rule_key,
                title=title,
                details=details,
                priority=priority,
                status="open",
                due_date=due_date,
            )
        )

    def upsert_notification(
        self,
        owner_id: UUID,
        client_id: Optional[UUID],
        type: str,
        title: str,
        body: Optional[str],
        created_for_date: date,
    ) -> int:
        """Insert or re-arm the notification for this natural key. Returns affected rows."""
        return self._sink.upsert_notification(
            NotificationInsert(
                owner_id=owner_id,
                client_id=client_id,
                type=type,
                title=title,
                body=body,
                created_for_date=created_for_date,
                is_read=False,
            )
        )

    def apply(
        self, owner_id: UUID, rule: SignalRule, finding: Finding, today: date
    ) -> Tuple[int, int]:
        """
        Write the task and the notification for one finding.

        Both writes run in the caller's transaction; if the second one raises,
        the exception propagates and the caller's rollback discards the first.

        Returns
        -------
        tuple[int, int]
            Affected task rows and affected notification rows.
        """
        tasks = self.upsert_task(
            owner_id=owner_id,
            client_id=finding.client_id,
            rule_key=rule.rule_key,
            title=rule.task_title,
            details=rule.task_details(finding),
            priority=rule.priority,
            due_date=today,
        )
        notifications = self.upsert_notification(
            owner_id=owner_id,
            client_id=finding.client_id,
            type=rule.rule_key,
            title=rule.notification_title,
            body=rule.notification_body(finding),
            created_for_date=today,
        )
        log.debug(
            "Signal upserted",
            extra={
                "owner_id": str(owner_id),
                "rule": rule.rule_key,
                "client_id": str(finding.client_id),
                "tasks": tasks,
                "notifications": notifications,
            },
        )
        return tasks, notifications


__all__ = ["SignalUpserter"]
