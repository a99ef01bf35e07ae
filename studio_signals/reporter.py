from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from studio_signals.domain.models import (
    AutomationSettings,
    FollowUpTask,
    Notification,
    RefreshResult,
    group_tasks_by_due,
)

_PRIORITY_STYLES = {"high": "bold red", "medium": "yellow", "low": "dim"}
_BUCKET_TITLES = {"overdue": "Overdue", "today": "Due today", "upcoming": "Upcoming"}


def _console(console: Optional[Console]) -> Console:
    return console or Console()


def print_refresh_result(result: RefreshResult, console: Optional[Console] = None) -> None:
    """
    Summarize one refresh call.
    """
    out = _console(console)
    refreshed_at = result.refreshed_at.isoformat() if result.refreshed_at else "never"
    if result.skipped:
        out.print(f"[yellow]Already refreshed today[/yellow] (last refresh {refreshed_at}).")
        return
    out.print(
        f"[green]Signals refreshed:[/green] {result.tasks_generated} tasks, "
        f"{result.notifications_generated} notifications at {refreshed_at}."
    )


def print_tasks(
    tasks: List[FollowUpTask],
    today: date,
    client_names: Optional[Dict[object, str]] = None,
    console: Optional[Console] = None,
) -> None:
    """
    Render follow-up tasks as rich tables grouped into overdue / today / upcoming.
    """
    out = _console(console)
    if not tasks:
        out.print("[yellow]No follow-up tasks.[/yellow]")
        return

    names = client_names or {}
    for bucket, bucket_tasks in group_tasks_by_due(tasks, today).items():
        if not bucket_tasks:
            continue
        table = Table(title=_BUCKET_TITLES[bucket], box=box.ROUNDED)
        table.add_column("Due", style="cyan", no_wrap=True)
        table.add_column("Priority", no_wrap=True)
        table.add_column("Status", style="magenta", no_wrap=True)
        table.add_column("Client")
        table.add_column("Title", style="bold")
        table.add_column("Details")
        table.add_column("Id", style="dim", no_wrap=True)
        for task in bucket_tasks:
            table.add_row(
                task.due_date.isoformat(),
                f"[{_PRIORITY_STYLES[task.priority]}]{task.priority}[/]",
                task.status,
                names.get(task.client_id, str(task.client_id)[:8]),
                task.title,
                task.details or "",
                str(task.id),
            )
        out.print(table)


def print_notifications(
    notifications: List[Notification], unread: int, console: Optional[Console] = None
) -> None:
    out = _console(console)
    if not notifications:
        out.print("[yellow]No notifications.[/yellow]")
        return

    table = Table(title=f"Notifications ({unread} unread)", box=box.ROUNDED)
    table.add_column("For", style="cyan", no_wrap=True)
    table.add_column("Type", style="magenta", no_wrap=True)
    table.add_column("Title", style="bold")
    table.add_column("Body")
    table.add_column("Read", justify="center")
    table.add_column("Id", style="dim", no_wrap=True)
    for notification in notifications:
        table.add_row(
            notification.created_for_date.isoformat(),
            notification.type,
            notification.title,
            notification.body or "",
            "yes" if notification.is_read else "[bold]no[/bold]",
            str(notification.id),
        )
    out.print(table)


def print_settings(settings: AutomationSettings, console: Optional[Console] = None) -> None:
    out = _console(console)
    table = Table(title="Automation settings", box=box.ROUNDED, show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("No-show risk", "on" if settings.no_show_risk_enabled else "off")
    table.add_row("Attendance drop", "on" if settings.attendance_drop_enabled else "off")
    table.add_row("Pending unpaid risk", "on" if settings.pending_unpaid_risk_enabled else "off")
    table.add_row("No-show threshold", str(settings.no_show_threshold))
    table.add_row("Pending lessons threshold", str(settings.pending_lessons_threshold))
    table.add_row("Attendance drop ratio", f"{settings.attendance_drop_ratio:.2f}")
    table.add_row(
        "Last refreshed",
        settings.last_refreshed_at.isoformat() if settings.last_refreshed_at else "never",
    )
    out.print(table)


__all__ = ["print_notifications", "print_refresh_result", "print_settings", "print_tasks"]
