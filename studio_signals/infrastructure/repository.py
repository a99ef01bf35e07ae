"""
PostgreSQL implementation of the studio store.

PostgresStudioStore implements the read interface, the signal sink and the
settings store over a single psycopg connection; it never commits on its own.
Transaction boundaries belong to ``postgres_unit_of_work``, which wraps one
refresh (or one CLI operation) in a single transaction:

    from studio_signals.infrastructure.repository import postgres_unit_of_work

    with postgres_unit_of_work() as store:
        settings = store.lock_settings_for_update(owner_id)
        ...

Every query filters by ``owner_id``. psycopg errors are translated into the
package error taxonomy at this boundary.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Callable, Generator, List, Optional, Sequence, TypeVar
from uuid import UUID

import psycopg
from psycopg import Connection
from psycopg.rows import dict_row
from psycopg_pool import PoolTimeout

from studio_signals.config import Settings, get_settings
from studio_signals.domain.models import (
    AttendanceRecord,
    AttendanceStatus,
    AutomationSettings,
    AutomationSettingsUpdate,
    Client,
    FollowUpTask,
    FollowUpTaskInsert,
    Notification,
    NotificationInsert,
    PaymentRecord,
    RESOLVED_TASK_STATUSES,
    TaskPriority,
    TaskStatus,
)
from studio_signals.errors import ConstraintViolation, DataSourceFailure, NotFound
from studio_signals.infrastructure.db_factory import (
    PoolManager,
    apply_statement_timeout,
    apply_time_zone,
)
from studio_signals.utils.logging import get_logger

log = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

_CLIENT_COLUMNS = "id, owner_id, full_name, phone, is_active, created_at"
_ATTENDANCE_COLUMNS = (
    "id, owner_id, client_id, session_date, time_of_day, duration_minutes, bed_type, status, notes"
)
_PAYMENT_COLUMNS = "id, owner_id, client_id, month_start, lesson_count, price, paid, notes"
_SETTINGS_COLUMNS = (
    "owner_id, no_show_risk_enabled, attendance_drop_enabled, pending_unpaid_risk_enabled, "
    "no_show_threshold, pending_lessons_threshold, attendance_drop_ratio, last_refreshed_at"
)
_TASK_COLUMNS = (
    "id, owner_id, client_id, rule_key, title, details, priority, status, due_date, "
    "created_at, updated_at, resolved_at"
)
_NOTIFICATION_COLUMNS = (
    "id, owner_id, client_id, type, title, body, created_for_date, is_read, created_at, read_at"
)

_UPSERT_TASK_SQL = """
    INSERT INTO follow_up_tasks (
        owner_id, client_id, rule_key, title, details, priority, status, due_date, updated_at
    ) VALUES (
        %(owner_id)s, %(client_id)s, %(rule_key)s, %(title)s, %(details)s,
        %(priority)s, %(status)s, %(due_date)s, now()
    )
    ON CONFLICT (owner_id, client_id, rule_key, due_date)
    DO UPDATE SET
        title = EXCLUDED.title,
        details = EXCLUDED.details,
        priority = EXCLUDED.priority,
        updated_at = now()
"""

_UPSERT_NOTIFICATION_SQL = """
    INSERT INTO notifications (
        owner_id, client_id, type, title, body, created_for_date, is_read, created_at
    ) VALUES (
        %(owner_id)s, %(client_id)s, %(type)s, %(title)s, %(body)s,
        %(created_for_date)s, %(is_read)s, now()
    )
    ON CONFLICT (owner_id, client_id, type, created_for_date)
    DO UPDATE SET
        title = EXCLUDED.title,
        body = EXCLUDED.body,
        is_read = false,
        read_at = NULL
"""


def _translate_errors(func: F) -> F:
    """Map psycopg failures onto ConstraintViolation / DataSourceFailure."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except psycopg.IntegrityError as exc:
            raise ConstraintViolation(f"{func.__name__}: {exc}") from exc
        except (psycopg.OperationalError, psycopg.InterfaceError) as exc:
            raise DataSourceFailure(f"{func.__name__}: {exc}") from exc

    return wrapper  # type: ignore[return-value]


class PostgresStudioStore:
    """
    Owner-scoped data access over one psycopg connection.

    Parameters
    ----------
    conn : psycopg.Connection
        Connection with a transaction already open; this class never commits.
    defaults : Settings | None
        Source of the thresholds written when a settings row is created.
    """

    def __init__(self, conn: Connection, defaults: Optional[Settings] = None) -> None:
        self._conn = conn
        self._defaults = defaults or get_settings()

    def _fetch_all(self, sql: str, params: Sequence[Any] | dict) -> List[dict]:
        with self._conn.cursor(row_factory=dict_row) as cur:
            cur.execute(sql, params)
            return cur.fetchall()

    def _fetch_one(self, sql: str, params: Sequence[Any] | dict) -> Optional[dict]:
        with self._conn.cursor(row_factory=dict_row) as cur:
            cur.execute(sql, params)
            return cur.fetchone()

    def _execute(self, sql: str, params: Sequence[Any] | dict) -> int:
        with self._conn.cursor() as cur:
            cur.execute(sql, params)
            return cur.rowcount

    # Clock

    @_translate_errors
    def current_timestamp(self) -> datetime:
        """Transaction start time, aware, in the session time zone."""
        with self._conn.cursor() as cur:
            cur.execute("SELECT now()")
            row = cur.fetchone()
        return row[0]

    # Read interface

    @_translate_errors
    def list_attendance(
        self,
        owner_id: UUID,
        date_from: date,
        date_to: date,
        status: Optional[AttendanceStatus] = None,
    ) -> List[AttendanceRecord]:
        sql = (
            f"SELECT {_ATTENDANCE_COLUMNS} FROM attendance "
            "WHERE owner_id = %s AND session_date >= %s AND session_date <= %s"
        )
        params: List[Any] = [owner_id, date_from, date_to]
        if status is not None:
            sql += " AND status = %s"
            params.append(status)
        sql += " ORDER BY session_date, time_of_day"
        return [AttendanceRecord(**row) for row in self._fetch_all(sql, params)]

    @_translate_errors
    def list_payments_for_month(self, owner_id: UUID, month_start: date) -> List[PaymentRecord]:
        rows = self._fetch_all(
            f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE owner_id = %s AND month_start = %s",
            (owner_id, month_start),
        )
        return [PaymentRecord(**row) for row in rows]

    @_translate_errors
    def list_active_clients(self, owner_id: UUID) -> List[Client]:
        rows = self._fetch_all(
            f"SELECT {_CLIENT_COLUMNS} FROM clients "
            "WHERE owner_id = %s AND is_active ORDER BY full_name",
            (owner_id,),
        )
        return [Client(**row) for row in rows]

    @_translate_errors
    def list_clients(self, owner_id: UUID) -> List[Client]:
        rows = self._fetch_all(
            f"SELECT {_CLIENT_COLUMNS} FROM clients WHERE owner_id = %s ORDER BY full_name",
            (owner_id,),
        )
        return [Client(**row) for row in rows]

    # Signal sink

    @_translate_errors
    def upsert_task(self, task: FollowUpTaskInsert) -> int:
        return self._execute(_UPSERT_TASK_SQL, task.model_dump())

    @_translate_errors
    def upsert_notification(self, notification: NotificationInsert) -> int:
        return self._execute(_UPSERT_NOTIFICATION_SQL, notification.model_dump())

    # Settings store

    @_translate_errors
    def get_or_create_settings(self, owner_id: UUID) -> AutomationSettings:
        self._execute(
            """
            INSERT INTO automation_settings (
                owner_id, no_show_threshold, pending_lessons_threshold, attendance_drop_ratio
            ) VALUES (%s, %s, %s, %s)
            ON CONFLICT (owner_id) DO NOTHING
            """,
            (
                owner_id,
                self._defaults.default_no_show_threshold,
                self._defaults.default_pending_lessons_threshold,
                self._defaults.default_attendance_drop_ratio,
            ),
        )
        row = self._fetch_one(
            f"SELECT {_SETTINGS_COLUMNS} FROM automation_settings WHERE owner_id = %s",
            (owner_id,),
        )
        if row is None:
            raise NotFound(f"automation settings for owner {owner_id}")
        return AutomationSettings(**row)

    @_translate_errors
    def lock_settings_for_update(self, owner_id: UUID) -> AutomationSettings:
        """Read the settings row under ``FOR UPDATE``; blocks while another refresh holds it."""
        row = self._fetch_one(
            f"SELECT {_SETTINGS_COLUMNS} FROM automation_settings WHERE owner_id = %s FOR UPDATE",
            (owner_id,),
        )
        if row is None:
            raise NotFound(f"automation settings for owner {owner_id}")
        return AutomationSettings(**row)

    @_translate_errors
    def save_settings_timestamp(self, owner_id: UUID, timestamp: datetime) -> None:
        self._execute(
            "UPDATE automation_settings SET last_refreshed_at = %s, updated_at = now() "
            "WHERE owner_id = %s",
            (timestamp, owner_id),
        )

    @_translate_errors
    def update_settings(
        self, owner_id: UUID, update: AutomationSettingsUpdate
    ) -> AutomationSettings:
        """Apply a partial settings update, creating the row first if needed."""
        current = self.get_or_create_settings(owner_id)
        changes = update.changes()
        if not changes:
            return current
        assignments = ", ".join(f"{column} = %({column})s" for column in changes)
        row = self._fetch_one(
            f"UPDATE automation_settings SET {assignments}, updated_at = now() "
            f"WHERE owner_id = %(owner_id)s RETURNING {_SETTINGS_COLUMNS}",
            {**changes, "owner_id": owner_id},
        )
        log.info(
            "Automation settings updated",
            extra={"owner_id": str(owner_id), "fields": sorted(changes)},
        )
        return AutomationSettings(**row)

    # Follow-up tasks

    @_translate_errors
    def list_tasks(
        self, owner_id: UUID, statuses: Optional[Sequence[TaskStatus]] = None
    ) -> List[FollowUpTask]:
        sql = f"SELECT {_TASK_COLUMNS} FROM follow_up_tasks WHERE owner_id = %s"
        params: List[Any] = [owner_id]
        if statuses:
            sql += " AND status = ANY(%s)"
            params.append(list(statuses))
        sql += (
            " ORDER BY due_date,"
            " CASE priority WHEN 'high' THEN 0 WHEN 'medium' THEN 1 ELSE 2 END,"
            " created_at"
        )
        return [FollowUpTask(**row) for row in self._fetch_all(sql, params)]

    @_translate_errors
    def update_task_status(
        self, owner_id: UUID, task_id: UUID, status: TaskStatus
    ) -> FollowUpTask:
        """
        Move a task to ``status``. ``done`` and ``dismissed`` stamp
        ``resolved_at``; ``open`` and ``in_progress`` clear it.
        """
        resolved = status in RESOLVED_TASK_STATUSES
        row = self._fetch_one(
            f"""
            UPDATE follow_up_tasks
            SET status = %s,
                resolved_at = CASE WHEN %s THEN now() ELSE NULL END,
                updated_at = now()
            WHERE owner_id = %s AND id = %s
            RETURNING {_TASK_COLUMNS}
            """,
            (status, resolved, owner_id, task_id),
        )
        if row is None:
            raise NotFound(f"follow-up task {task_id}")
        return FollowUpTask(**row)

    @_translate_errors
    def add_manual_task(
        self,
        owner_id: UUID,
        client_id: UUID,
        title: str,
        due_date: date,
        priority: TaskPriority = "medium",
        details: Optional[str] = None,
    ) -> FollowUpTask:
        """Insert a hand-written follow-up; its rule key is unique per call."""
        stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
        task = FollowUpTaskInsert(
            owner_id=owner_id,
            client_id=client_id,
            rule_key=f"manual_follow_up_{client_id}_{stamp}",
            title=title.strip(),
            details=details,
            priority=priority,
            status="open",
            due_date=due_date,
        )
        row = self._fetch_one(
            f"""
            INSERT INTO follow_up_tasks (
                owner_id, client_id, rule_key, title, details, priority, status, due_date
            ) VALUES (
                %(owner_id)s, %(client_id)s, %(rule_key)s, %(title)s, %(details)s,
                %(priority)s, %(status)s, %(due_date)s
            )
            RETURNING {_TASK_COLUMNS}
            """,
            task.model_dump(),
        )
        return FollowUpTask(**row)

    # Notifications

    @_translate_errors
    def list_notifications(
        self, owner_id: UUID, unread_only: bool = False, limit: int = 50
    ) -> List[Notification]:
        sql = f"SELECT {_NOTIFICATION_COLUMNS} FROM notifications WHERE owner_id = %s"
        if unread_only:
            sql += " AND NOT is_read"
        sql += " ORDER BY created_at DESC LIMIT %s"
        return [Notification(**row) for row in self._fetch_all(sql, (owner_id, limit))]

    @_translate_errors
    def unread_notification_count(self, owner_id: UUID) -> int:
        with self._conn.cursor() as cur:
            cur.execute(
                "SELECT count(*) FROM notifications WHERE owner_id = %s AND NOT is_read",
                (owner_id,),
            )
            return cur.fetchone()[0]

    @_translate_errors
    def mark_notification_read(self, owner_id: UUID, notification_id: UUID) -> Notification:
        row = self._fetch_one(
            f"""
            UPDATE notifications
            SET is_read = true, read_at = COALESCE(read_at, now())
            WHERE owner_id = %s AND id = %s
            RETURNING {_NOTIFICATION_COLUMNS}
            """,
            (owner_id, notification_id),
        )
        if row is None:
            raise NotFound(f"notification {notification_id}")
        return Notification(**row)

    @_translate_errors
    def mark_all_notifications_read(self, owner_id: UUID) -> int:
        return self._execute(
            "UPDATE notifications SET is_read = true, read_at = now() "
            "WHERE owner_id = %s AND NOT is_read",
            (owner_id,),
        )


@contextmanager
def postgres_unit_of_work(
    settings: Optional[Settings] = None,
) -> Generator[PostgresStudioStore, None, None]:
    """
    One atomic transaction on a pooled connection.

    Commits when the block exits cleanly; any exception (including
    KeyboardInterrupt on cancellation) rolls every write back before it
    propagates.

    Raises
    ------
    DataSourceFailure
        If no connection can be obtained or the transaction cannot start or commit.
    """
    settings = settings or get_settings()
    try:
        with PoolManager().sync_connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    apply_statement_timeout(cur, settings.db_statement_timeout_ms)
                    apply_time_zone(cur, settings.studio_timezone)
                yield PostgresStudioStore(conn, defaults=settings)
    except PoolTimeout as exc:
        raise DataSourceFailure(f"no database connection available: {exc}") from exc
    except (psycopg.OperationalError, psycopg.InterfaceError) as exc:
        raise DataSourceFailure(str(exc)) from exc


__all__ = ["PostgresStudioStore", "postgres_unit_of_work"]
