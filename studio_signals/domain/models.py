"""
Domain models for Studio Signals.

Defines the record schemas aligned with `db/init.sql`: the historical inputs the
refresh engine reads (clients, attendance, payments), the per-owner automation
settings, and the follow-up tasks and notifications it writes. These models
are used for validation, serialization, and type hints across the rules, the
upserter, the repository and the CLI.
"""
from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ValidationError, field_validator

from studio_signals.errors import InvalidSettings

BedType = Literal["reformer", "cadillac"]
AttendanceStatus = Literal["attended", "canceled", "no_show"]
TaskPriority = Literal["high", "medium", "low"]
TaskStatus = Literal["open", "in_progress", "done", "dismissed"]

RESOLVED_TASK_STATUSES: frozenset[str] = frozenset({"done", "dismissed"})
PRIORITY_ORDER: Dict[str, int] = {"high": 0, "medium": 1, "low": 2}

_FROZEN = {"frozen": True, "populate_by_name": True}


class Client(BaseModel):
    """A studio client. Owned by exactly one owner."""

    id: UUID
    owner_id: UUID
    full_name: str
    phone: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None

    model_config = _FROZEN


class AttendanceRecord(BaseModel):
    """One scheduled session for a client and its outcome."""

    id: UUID
    owner_id: UUID
    client_id: UUID
    session_date: date
    time_of_day: Optional[time] = None
    duration_minutes: Optional[int] = Field(None, ge=0)
    bed_type: BedType = "reformer"
    status: AttendanceStatus = "attended"
    notes: Optional[str] = None

    model_config = _FROZEN


class PaymentRecord(BaseModel):
    """A client's monthly package. At most one per (owner, client, month)."""

    id: UUID
    owner_id: UUID
    client_id: UUID
    month_start: date = Field(..., description="First day of the billed month.")
    lesson_count: Optional[int] = Field(None, ge=0)
    price: Optional[Decimal] = Field(None, ge=0)
    paid: bool = False
    notes: Optional[str] = None

    model_config = _FROZEN

    @field_validator("month_start")
    @classmethod
    def _first_of_month(cls, value: date) -> date:
        if value.day != 1:
            raise ValueError("month_start must be the first day of a month")
        return value


class AutomationSettings(BaseModel):
    """
    Per-owner rule configuration and the refresh bookkeeping timestamp.
    """

    owner_id: UUID
    no_show_risk_enabled: bool = True
    attendance_drop_enabled: bool = True
    pending_unpaid_risk_enabled: bool = True
    no_show_threshold: int = Field(2, ge=1)
    pending_lessons_threshold: int = Field(4, ge=1)
    attendance_drop_ratio: Decimal = Field(Decimal("0.50"), gt=0, le=1, decimal_places=2)
    last_refreshed_at: Optional[datetime] = None

    model_config = _FROZEN

    def is_enabled(self, flag: str) -> bool:
        return bool(getattr(self, flag))


class AutomationSettingsUpdate(BaseModel):
    """Partial update of the editable settings. Unset fields are left alone."""

    no_show_risk_enabled: Optional[bool] = None
    attendance_drop_enabled: Optional[bool] = None
    pending_unpaid_risk_enabled: Optional[bool] = None
    no_show_threshold: Optional[int] = Field(None, ge=1)
    pending_lessons_threshold: Optional[int] = Field(None, ge=1)
    attendance_drop_ratio: Optional[Decimal] = Field(None, gt=0, le=1, decimal_places=2)

    model_config = {"frozen": True, "extra": "forbid"}

    @classmethod
    def from_changes(cls, **changes: object) -> "AutomationSettingsUpdate":
        """Build an update from loose keyword changes, raising InvalidSettings on bad input."""
        try:
            return cls(**{k: v for k, v in changes.items() if v is not None})
        except ValidationError as exc:
            raise InvalidSettings(str(exc)) from exc

    def changes(self) -> Dict[str, object]:
        return self.model_dump(exclude_none=True)


class FollowUpTask(BaseModel):
    """A follow-up task as stored."""

    id: UUID
    owner_id: UUID
    client_id: UUID
    rule_key: str
    title: str
    details: Optional[str] = None
    priority: TaskPriority = "medium"
    status: TaskStatus = "open"
    due_date: date
    created_at: datetime
    updated_at: datetime
    resolved_at: Optional[datetime] = None

    model_config = _FROZEN


class FollowUpTaskInsert(BaseModel):
    """
    A task to upsert. Natural key: (owner_id, client_id, rule_key, due_date).
    """

    owner_id: UUID
    client_id: UUID
    rule_key: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    details: Optional[str] = None
    priority: TaskPriority = "medium"
    status: TaskStatus = "open"
    due_date: date

    model_config = _FROZEN

    @property
    def natural_key(self) -> tuple:
        return (self.owner_id, self.client_id, self.rule_key, self.due_date)


class Notification(BaseModel):
    """A notification as stored."""

    id: UUID
    owner_id: UUID
    client_id: Optional[UUID] = None
    type: str
    title: str
    body: Optional[str] = None
    created_for_date: date
    is_read: bool = False
    created_at: datetime
    read_at: Optional[datetime] = None

    model_config = _FROZEN


class NotificationInsert(BaseModel):
    """
    A notification to upsert. Natural key: (owner_id, client_id, type, created_for_date).
    """

    owner_id: UUID
    client_id: Optional[UUID] = None
    type: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    body: Optional[str] = None
    created_for_date: date
    is_read: bool = False

    model_config = _FROZEN

    @property
    def natural_key(self) -> tuple:
        return (self.owner_id, self.client_id, self.type, self.created_for_date)


class Finding(BaseModel):
    """
    Evidence, for one client, that a rule's follow-up signal should exist.
    """

    rule_key: str
    client_id: UUID
    client_name: str
    metrics: Dict[str, int] = Field(default_factory=dict)

    model_config = _FROZEN


class RefreshResult(BaseModel):
    """Aggregate outcome of one refresh call."""

    tasks_generated: int = 0
    notifications_generated: int = 0
    refreshed_at: Optional[datetime] = None
    skipped: bool = Field(False, description="True when the daily guard short-circuited.")

    model_config = _FROZEN

    def as_payload(self) -> Dict[str, object]:
        """Shape returned to external callers of refresh_management_signals()."""
        return {
            "generated_tasks": self.tasks_generated,
            "generated_notifications": self.notifications_generated,
            "refreshed_at": self.refreshed_at,
        }


def due_bucket(due_date: date, today: date) -> str:
    """``overdue``, ``today`` or ``upcoming`` relative to ``today``."""
    if due_date < today:
        return "overdue"
    if due_date == today:
        return "today"
    return "upcoming"


def group_tasks_by_due(tasks: List[FollowUpTask], today: date) -> Dict[str, List[FollowUpTask]]:
    """Bucket tasks by due date; within a bucket, earliest due first, then highest priority."""
    groups: Dict[str, List[FollowUpTask]] = {"overdue": [], "today": [], "upcoming": []}
    ordered = sorted(tasks, key=lambda t: (t.due_date, PRIORITY_ORDER[t.priority]))
    for task in ordered:
        groups[due_bucket(task.due_date, today)].append(task)
    return groups


__all__ = [
    "AttendanceRecord",
    "AttendanceStatus",
    "AutomationSettings",
    "AutomationSettingsUpdate",
    "BedType",
    "Client",
    "Finding",
    "due_bucket",
    "group_tasks_by_due",
    "FollowUpTask",
    "FollowUpTaskInsert",
    "Notification",
    "NotificationInsert",
    "PaymentRecord",
    "PRIORITY_ORDER",
    "RefreshResult",
    "RESOLVED_TASK_STATUSES",
    "TaskPriority",
    "TaskStatus",
]
