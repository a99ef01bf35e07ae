"""
Storage interfaces the refresh engine depends on.

The concrete PostgreSQL implementation lives in
`studio_signals.infrastructure.repository`; unit tests provide in-memory
fakes. All methods are scoped by ``owner_id`` and never touch another owner's
rows.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import ContextManager, List, Optional, Protocol, runtime_checkable
from uuid import UUID

from studio_signals.domain.models import (
    AttendanceRecord,
    AttendanceStatus,
    AutomationSettings,
    Client,
    FollowUpTaskInsert,
    NotificationInsert,
    PaymentRecord,
)


@runtime_checkable
class HistoricalDataReader(Protocol):
    """Read side: attendance, payment and client history for one owner."""

    def list_attendance(
        self,
        owner_id: UUID,
        date_from: date,
        date_to: date,
        status: Optional[AttendanceStatus] = None,
    ) -> List[AttendanceRecord]:
        """Sessions with ``date_from <= session_date <= date_to`` (both inclusive)."""
        ...

    def list_payments_for_month(self, owner_id: UUID, month_start: date) -> List[PaymentRecord]:
        ...

    def list_active_clients(self, owner_id: UUID) -> List[Client]:
        ...

    def list_clients(self, owner_id: UUID) -> List[Client]:
        """All clients, active or not."""
        ...


@runtime_checkable
class SignalSink(Protocol):
    """Write side: natural-key upserts returning affected row counts."""

    def upsert_task(self, task: FollowUpTaskInsert) -> int:
        ...

    def upsert_notification(self, notification: NotificationInsert) -> int:
        ...


@runtime_checkable
class SettingsStore(Protocol):
    """Per-owner automation settings lifecycle."""

    def get_or_create_settings(self, owner_id: UUID) -> AutomationSettings:
        ...

    def lock_settings_for_update(self, owner_id: UUID) -> AutomationSettings:
        ...

    def save_settings_timestamp(self, owner_id: UUID, timestamp: datetime) -> None:
        ...


@runtime_checkable
class StudioStore(HistoricalDataReader, SignalSink, SettingsStore, Protocol):
    """Everything one refresh transaction needs, plus the store's clock."""

    def current_timestamp(self) -> datetime:
        """The store's "now" for the current transaction (timezone-aware)."""
        ...


class UnitOfWork(Protocol):
    """
    Factory for one atomic transaction. Entering yields a StudioStore; a clean
    exit commits every write, an exception rolls all of them back.
    """

    def __call__(self) -> ContextManager[StudioStore]:
        ...


__all__ = [
    "HistoricalDataReader",
    "SettingsStore",
    "SignalSink",
    "StudioStore",
    "UnitOfWork",
]
