"""
Domain package for Studio Signals.

Exports the record models and the storage interfaces used across the rules,
the upserter and the orchestrator. Keep this package focused on data
definitions and validation concerns.
"""

from studio_signals.domain.models import (
    AttendanceRecord,
    AutomationSettings,
    AutomationSettingsUpdate,
    Client,
    Finding,
    FollowUpTask,
    FollowUpTaskInsert,
    Notification,
    NotificationInsert,
    PaymentRecord,
    RefreshResult,
)
from studio_signals.domain.ports import (
    HistoricalDataReader,
    SettingsStore,
    SignalSink,
    StudioStore,
    UnitOfWork,
)

__all__ = [
    "AttendanceRecord",
    "AutomationSettings",
    "AutomationSettingsUpdate",
    "Client",
    "Finding",
    "FollowUpTask",
    "FollowUpTaskInsert",
    "Notification",
    "NotificationInsert",
    "PaymentRecord",
    "RefreshResult",
    # Ports
    "HistoricalDataReader",
    "SettingsStore",
    "SignalSink",
    "StudioStore",
    "UnitOfWork",
]
