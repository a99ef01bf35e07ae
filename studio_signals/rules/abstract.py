"""
Abstract rule interfaces and shared window helpers for Studio Signals.

Concrete rules (no-show risk, attendance drop, pending unpaid risk) implement
the AbstractSignalRule ABC. A rule splits into two steps so the orchestrator
can keep all I/O in one place:

- ``fetch`` pulls the slice of history the rule needs from the reader.
- ``evaluate`` is a pure function from that snapshot plus the owner's settings
  to a list of findings, at most one per client.

Rendering (task title/details, notification title/body) also lives on the
rule; writing is left to the rule-agnostic SignalUpserter.
"""

from __future__ import annotations

import abc
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, List, Protocol, Tuple, runtime_checkable
from uuid import UUID

from studio_signals.domain.models import (
    AttendanceRecord,
    AutomationSettings,
    Client,
    Finding,
    PaymentRecord,
    TaskPriority,
)
from studio_signals.domain.ports import HistoricalDataReader

ROLLING_WINDOW_DAYS = 28


def trailing_window(today: date, days: int = ROLLING_WINDOW_DAYS) -> Tuple[date, date]:
    """``[today - days, today]``, both ends inclusive."""
    return today - timedelta(days=days), today


def previous_window(today: date, days: int = ROLLING_WINDOW_DAYS) -> Tuple[date, date]:
    """
    The window just before the trailing one: ``[today - 2*days, today - days)``.

    Returned as inclusive bounds, so the upper bound is ``today - days - 1``.
    """
    return today - timedelta(days=2 * days), today - timedelta(days=days + 1)


def month_bounds(today: date) -> Tuple[date, date]:
    """``(month_start, next_month_start)`` for the month containing ``today``."""
    month_start = today.replace(day=1)
    if month_start.month == 12:
        next_month_start = month_start.replace(year=month_start.year + 1, month=1)
    else:
        next_month_start = month_start.replace(month=month_start.month + 1)
    return month_start, next_month_start


def count_by_client(
    records: Iterable[AttendanceRecord],
    status: str,
    date_from: date,
    date_to: date,
) -> Counter:
    """Count ``status`` sessions per client with ``date_from <= session_date <= date_to``."""
    return Counter(
        r.client_id
        for r in records
        if r.status == status and date_from <= r.session_date <= date_to
    )


@dataclass(frozen=True)
class RuleSnapshot:
    """
    The history a rule evaluates, already fetched for one owner.
    """

    owner_id: UUID
    today: date
    clients: List[Client] = field(default_factory=list)
    attendance: List[AttendanceRecord] = field(default_factory=list)
    payments: List[PaymentRecord] = field(default_factory=list)


@runtime_checkable
class SignalRule(Protocol):
    """
    Common interface all rules must implement.

    Attributes
    ----------
    rule_key : str
        Stored as the task ``rule_key`` and the notification ``type``.
    description : str
        A human-friendly summary of the trigger.
    priority : str
        Priority assigned to the generated task.
    enabled_flag : str
        AutomationSettings field that switches the rule on or off.
    """

    rule_key: str
    description: str
    priority: TaskPriority
    enabled_flag: str
    task_title: str
    notification_title: str

    def is_enabled(self, settings: AutomationSettings) -> bool:
        ...

    def fetch(self, reader: HistoricalDataReader, owner_id: UUID, today: date) -> RuleSnapshot:
        ...

    def evaluate(self, snapshot: RuleSnapshot, settings: AutomationSettings) -> List[Finding]:
        ...

    def task_details(self, finding: Finding) -> str:
        ...

    def notification_body(self, finding: Finding) -> str:
        ...


class AbstractSignalRule(abc.ABC):
    """
    ABC helper for class-based rules.

    Subclasses set the class attributes and implement ``fetch``, ``evaluate``
    and the two rendering hooks.
    """

    rule_key: str
    description: str
    priority: TaskPriority
    enabled_flag: str
    task_title: str
    notification_title: str

    def is_enabled(self, settings: AutomationSettings) -> bool:
        return settings.is_enabled(self.enabled_flag)

    @abc.abstractmethod
    def fetch(
        self, reader: HistoricalDataReader, owner_id: UUID, today: date
    ) -> RuleSnapshot:  # pragma: no cover - interface only
        """Load the history this rule needs."""
        raise NotImplementedError

    @abc.abstractmethod
    def evaluate(
        self, snapshot: RuleSnapshot, settings: AutomationSettings
    ) -> List[Finding]:  # pragma: no cover - interface only
        """Return the findings for the snapshot. Must not perform I/O."""
        raise NotImplementedError

    @abc.abstractmethod
    def task_details(self, finding: Finding) -> str:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def notification_body(self, finding: Finding) -> str:  # pragma: no cover - interface only
        raise NotImplementedError

    def _finding(self, client: Client, **metrics: int) -> Finding:
        return Finding(
            rule_key=self.rule_key,
            client_id=client.id,
            client_name=client.full_name,
            metrics=metrics,
        )

    @staticmethod
    def _sorted(findings: List[Finding]) -> List[Finding]:
        return sorted(findings, key=lambda f: (f.client_name.casefold(), str(f.client_id)))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(rule_key={self.rule_key!r})"


__all__ = [
    "ROLLING_WINDOW_DAYS",
    "AbstractSignalRule",
    "RuleSnapshot",
    "SignalRule",
    "count_by_client",
    "month_bounds",
    "previous_window",
    "trailing_window",
]
