from __future__ import annotations

import contextlib
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Generator, List, Optional
from uuid import UUID

import typer

from studio_signals.config import get_settings
from studio_signals.domain.models import AutomationSettingsUpdate
from studio_signals.errors import SignalError, Unauthenticated
from studio_signals.infrastructure.db_factory import get_sync_connection
from studio_signals.infrastructure.repository import postgres_unit_of_work
from studio_signals.orchestrator import RefreshOrchestrator
from studio_signals.reporter import (
    print_notifications,
    print_refresh_result,
    print_settings,
    print_tasks,
)
from studio_signals.rules import available_rules
from studio_signals.utils.logging import configure_logging

app = typer.Typer(help="Studio Signals CLI: follow-up tasks and notifications for a fitness studio.")

OwnerOption = typer.Option(
    None,
    "--owner",
    "-o",
    help="Owner id to act as (default: STUDIO_OWNER_ID).",
)


@contextlib.contextmanager
def _cli_errors() -> Generator[None, None, None]:
    try:
        yield
    except SignalError as exc:
        typer.echo(f"Error ({type(exc).__name__}): {exc}", err=True)
        raise typer.Exit(code=1)


def _setup() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


def _resolve_owner(owner: Optional[UUID]) -> UUID:
    owner_id = owner or get_settings().studio_owner_id
    if owner_id is None:
        raise Unauthenticated("no owner given; pass --owner or set STUDIO_OWNER_ID")
    return owner_id


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"pool=({settings.db_pool_min_size},{settings.db_pool_max_size}) "
        f"timeout={settings.db_statement_timeout_ms}ms "
        f"tz={settings.studio_timezone or 'server'}"
    )
    typer.echo("Rules: " + ", ".join(available_rules()))


@app.command("init-db")
def init_db(
    schema: Path = typer.Option(
        Path("db/init.sql"),
        "--schema",
        help="DDL file to apply.",
        exists=True,
        dir_okay=False,
    ),
) -> None:
    """
    Create the studio tables if they do not exist.
    """
    _setup()
    with get_sync_connection() as conn:
        conn.execute(schema.read_text(encoding="utf-8"))
    typer.echo(f"Schema applied from {schema}.")


@app.command()
def refresh(owner: Optional[UUID] = OwnerOption) -> None:
    """
    Generate today's follow-up tasks and notifications (no-op if already run today).
    """
    _setup()
    with _cli_errors():
        owner_id = _resolve_owner(owner)
        result = RefreshOrchestrator().refresh(owner_id, caller_id=owner_id)
    print_refresh_result(result)


@app.command()
def tasks(
    owner: Optional[UUID] = OwnerOption,
    status: Optional[List[str]] = typer.Option(
        None,
        "--status",
        "-s",
        help="Only show tasks in these statuses (repeatable). Default: open and in_progress.",
    ),
) -> None:
    """
    List follow-up tasks grouped by due date.
    """
    _setup()
    statuses = status or ["open", "in_progress"]
    with _cli_errors():
        owner_id = _resolve_owner(owner)
        with postgres_unit_of_work() as store:
            task_list = store.list_tasks(owner_id, statuses=statuses)
            names = {client.id: client.full_name for client in store.list_clients(owner_id)}
            today = store.current_timestamp().date()
    print_tasks(task_list, today, client_names=names)


@app.command("task-status")
def task_status(
    task_id: UUID = typer.Argument(..., help="Task id."),
    status: str = typer.Argument(..., help="open, in_progress, done or dismissed."),
    owner: Optional[UUID] = OwnerOption,
) -> None:
    """
    Move a follow-up task to a new status.
    """
    _setup()
    if status not in ("open", "in_progress", "done", "dismissed"):
        raise typer.BadParameter(f"unknown status '{status}'", param_hint="STATUS")
    with _cli_errors():
        owner_id = _resolve_owner(owner)
        with postgres_unit_of_work() as store:
            task = store.update_task_status(owner_id, task_id, status)  # type: ignore[arg-type]
    typer.echo(f"Task {task.id} is now {task.status}.")


@app.command("add-task")
def add_task(
    client: UUID = typer.Option(..., "--client", "-c", help="Client id."),
    title: str = typer.Option(..., "--title", "-t", help="What to follow up on."),
    due: Optional[datetime] = typer.Option(
        None, "--due", formats=["%Y-%m-%d"], help="Due date (default: today)."
    ),
    priority: str = typer.Option("medium", "--priority", "-p", help="high, medium or low."),
    owner: Optional[UUID] = OwnerOption,
) -> None:
    """
    Add a manual follow-up task for a client.
    """
    _setup()
    if priority not in ("high", "medium", "low"):
        raise typer.BadParameter(f"unknown priority '{priority}'", param_hint="--priority")
    if not title.strip():
        raise typer.BadParameter("title must not be empty", param_hint="--title")
    with _cli_errors():
        owner_id = _resolve_owner(owner)
        with postgres_unit_of_work() as store:
            due_date: date = due.date() if due else store.current_timestamp().date()
            task = store.add_manual_task(
                owner_id, client, title, due_date, priority=priority  # type: ignore[arg-type]
            )
    typer.echo(f"Created task {task.id} due {task.due_date.isoformat()}.")


@app.command()
def notifications(
    owner: Optional[UUID] = OwnerOption,
    unread: bool = typer.Option(False, "--unread", help="Only unread notifications."),
    limit: int = typer.Option(50, "--limit", "-n", min=1),
) -> None:
    """
    List recent notifications.
    """
    _setup()
    with _cli_errors():
        owner_id = _resolve_owner(owner)
        with postgres_unit_of_work() as store:
            items = store.list_notifications(owner_id, unread_only=unread, limit=limit)
            unread_count = store.unread_notification_count(owner_id)
    print_notifications(items, unread_count)


@app.command("mark-read")
def mark_read(
    notification_id: Optional[UUID] = typer.Argument(None, help="Notification id."),
    all_: bool = typer.Option(False, "--all", help="Mark every unread notification as read."),
    owner: Optional[UUID] = OwnerOption,
) -> None:
    """
    Mark one notification, or all of them, as read.
    """
    _setup()
    if notification_id is None and not all_:
        raise typer.BadParameter("pass a notification id or --all")
    with _cli_errors():
        owner_id = _resolve_owner(owner)
        with postgres_unit_of_work() as store:
            if all_:
                count = store.mark_all_notifications_read(owner_id)
                typer.echo(f"Marked {count} notifications as read.")
            else:
                store.mark_notification_read(owner_id, notification_id)
                typer.echo(f"Notification {notification_id} marked as read.")


@app.command()
def settings(owner: Optional[UUID] = OwnerOption) -> None:
    """
    Show the owner's automation settings.
    """
    _setup()
    with _cli_errors():
        owner_id = _resolve_owner(owner)
        with postgres_unit_of_work() as store:
            current = store.get_or_create_settings(owner_id)
    print_settings(current)


@app.command()
def configure(
    owner: Optional[UUID] = OwnerOption,
    no_show_risk: Optional[bool] = typer.Option(
        None, "--no-show-risk/--skip-no-show-risk", help="Toggle the no-show rule."
    ),
    attendance_drop: Optional[bool] = typer.Option(
        None, "--attendance-drop/--skip-attendance-drop", help="Toggle the attendance drop rule."
    ),
    pending_unpaid_risk: Optional[bool] = typer.Option(
        None,
        "--pending-unpaid-risk/--skip-pending-unpaid-risk",
        help="Toggle the pending unpaid rule.",
    ),
    no_show_threshold: Optional[int] = typer.Option(None, "--no-show-threshold"),
    pending_lessons_threshold: Optional[int] = typer.Option(None, "--pending-lessons-threshold"),
    attendance_drop_ratio: Optional[float] = typer.Option(None, "--attendance-drop-ratio"),
) -> None:
    """
    Update rule switches and thresholds. Unspecified values are left unchanged.
    """
    _setup()
    with _cli_errors():
        update = AutomationSettingsUpdate.from_changes(
            no_show_risk_enabled=no_show_risk,
            attendance_drop_enabled=attendance_drop,
            pending_unpaid_risk_enabled=pending_unpaid_risk,
            no_show_threshold=no_show_threshold,
            pending_lessons_threshold=pending_lessons_threshold,
            attendance_drop_ratio=(
                str(attendance_drop_ratio) if attendance_drop_ratio is not None else None
            ),
        )
        owner_id = _resolve_owner(owner)
        with postgres_unit_of_work() as store:
            updated = store.update_settings(owner_id, update)
    print_settings(updated)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
