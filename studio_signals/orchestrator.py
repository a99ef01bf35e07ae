"""
Refresh orchestrator: runs the signal rules for one owner, at most once per day.

Usage (example from a request handler or scheduler):
    from studio_signals.identity import authenticated_as
    from studio_signals.orchestrator import refresh_management_signals

    with authenticated_as(owner_id):
        payload = refresh_management_signals()
    # {"generated_tasks": 3, "generated_notifications": 3, "refreshed_at": datetime(...)}

One refresh is one transaction:
1. create the owner's automation settings row if absent, then lock it
   (``SELECT ... FOR UPDATE``) so concurrent refreshes for the same owner
   serialize;
2. if ``last_refreshed_at`` is on today's date, return zero counts (daily guard);
3. evaluate every enabled rule in order and upsert a task and a notification
   per finding;
4. stamp ``last_refreshed_at`` and commit.

Any exception rolls the whole transaction back, so a failed refresh never marks
the day as done and never leaves a partial set of signals behind.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from studio_signals.domain.models import AutomationSettings, RefreshResult
from studio_signals.domain.ports import StudioStore, UnitOfWork
from studio_signals.errors import Unauthenticated
from studio_signals.identity import current_owner_id
from studio_signals.rules import default_rules
from studio_signals.rules.abstract import SignalRule
from studio_signals.upserter import SignalUpserter
from studio_signals.utils.logging import get_logger
from studio_signals.utils.profiler import profile_block

log = get_logger(__name__)


def already_refreshed_today(last_refreshed_at: Optional[datetime], now: datetime) -> bool:
    """
    Daily guard: True when ``last_refreshed_at`` falls on ``now``'s calendar day.

    Aware timestamps are compared in ``now``'s time zone, i.e. the store's.
    """
    if last_refreshed_at is None:
        return False
    if last_refreshed_at.tzinfo is not None and now.tzinfo is not None:
        last_refreshed_at = last_refreshed_at.astimezone(now.tzinfo)
    return last_refreshed_at.date() == now.date()


class RefreshOrchestrator:
    """
    Entry point for refreshing one owner's management signals.

    Parameters
    ----------
    unit_of_work : UnitOfWork | None
        Factory for the refresh transaction. Defaults to the PostgreSQL one.
    rules : Sequence[SignalRule] | None
        Rules to evaluate, in order. Defaults to every registered rule.
    """

    def __init__(
        self,
        unit_of_work: Optional[UnitOfWork] = None,
        rules: Optional[Sequence[SignalRule]] = None,
    ) -> None:
        if unit_of_work is None:
            from studio_signals.infrastructure.repository import postgres_unit_of_work

            unit_of_work = postgres_unit_of_work
        self._unit_of_work = unit_of_work
        self._rules: List[SignalRule] = list(rules) if rules is not None else default_rules()

    @property
    def rules(self) -> List[SignalRule]:
        return list(self._rules)

    def refresh(self, owner_id: UUID, caller_id: Optional[UUID]) -> RefreshResult:
        """
        Refresh signals for ``owner_id`` on behalf of ``caller_id``.

        Raises
        ------
        Unauthenticated
            If there is no caller, or the caller is not the owner. Nothing is written.
        DataSourceFailure, ConstraintViolation
            Propagated from the store after the transaction has rolled back.
        """
        if caller_id is None or owner_id is None:
            raise Unauthenticated("not authenticated")
        if caller_id != owner_id:
            raise Unauthenticated("caller may only refresh their own signals")

        log.info("[REFRESH START]", extra={"owner_id": str(owner_id)})
        try:
            with profile_block("refresh") as stats:
                with self._unit_of_work() as store:
                    result = self._refresh_locked(store, owner_id)
        except Exception:
            log.exception("[REFRESH FAILED] rolled back", extra={"owner_id": str(owner_id)})
            raise

        if result.skipped:
            log.info(
                "[REFRESH SKIPPED] already refreshed today",
                extra={"owner_id": str(owner_id), "refreshed_at": str(result.refreshed_at)},
            )
        else:
            log.info(
                "[REFRESH COMPLETE]",
                extra={
                    "owner_id": str(owner_id),
                    "tasks": result.tasks_generated,
                    "notifications": result.notifications_generated,
                    "duration_ms": stats.duration_ms,
                    "peak_rss_bytes": stats.peak_rss_bytes,
                    "cpu_percent": stats.cpu_percent,
                },
            )
        return result

    def _refresh_locked(self, store: StudioStore, owner_id: UUID) -> RefreshResult:
        store.get_or_create_settings(owner_id)
        settings = store.lock_settings_for_update(owner_id)
        now = store.current_timestamp()

        if already_refreshed_today(settings.last_refreshed_at, now):
            return RefreshResult(
                tasks_generated=0,
                notifications_generated=0,
                refreshed_at=settings.last_refreshed_at,
                skipped=True,
            )

        today = now.date()
        upserter = SignalUpserter(store)
        totals: Dict[str, int] = {"tasks": 0, "notifications": 0}

        for rule in self._rules:
            if not rule.is_enabled(settings):
                log.debug(
                    f"[RULE DISABLED] {rule.rule_key}",
                    extra={"owner_id": str(owner_id), "rule": rule.rule_key},
                )
                continue
            tasks, notifications = self._run_rule(
                rule, store, upserter, owner_id, today, settings
            )
            totals["tasks"] += tasks
            totals["notifications"] += notifications

        store.save_settings_timestamp(owner_id, now)
        return RefreshResult(
            tasks_generated=totals["tasks"],
            notifications_generated=totals["notifications"],
            refreshed_at=now,
        )

    def _run_rule(
        self,
        rule: SignalRule,
        store: StudioStore,
        upserter: SignalUpserter,
        owner_id: UUID,
        today: date,
        settings: AutomationSettings,
    ) -> Tuple[int, int]:
        with profile_block(rule.rule_key) as stats:
            snapshot = rule.fetch(store, owner_id, today)
            findings = rule.evaluate(snapshot, settings)
            tasks = notifications = 0
            for finding in findings:
                task_rows, notification_rows = upserter.apply(owner_id, rule, finding, today)
                tasks += task_rows
                notifications += notification_rows

        log.info(
            f"[RULE] {rule.rule_key}",
            extra={
                "owner_id": str(owner_id),
                "rule": rule.rule_key,
                "findings": len(findings),
                "tasks": tasks,
                "notifications": notifications,
                "duration_ms": stats.duration_ms,
                "peak_rss_bytes": stats.peak_rss_bytes,
                "cpu_percent": stats.cpu_percent,
            },
        )
        return tasks, notifications


_default_orchestrator: Optional[RefreshOrchestrator] = None


def _get_default_orchestrator() -> RefreshOrchestrator:
    global _default_orchestrator
    if _default_orchestrator is None:
        _default_orchestrator = RefreshOrchestrator()
    return _default_orchestrator


def refresh_management_signals(
    orchestrator: Optional[RefreshOrchestrator] = None,
) -> Dict[str, object]:
    """
    Refresh signals for the ambient caller.

    Resolves the caller with ``current_owner_id()`` (raising Unauthenticated
    when nobody is bound) and returns ``generated_tasks``,
    ``generated_notifications`` and ``refreshed_at``. Idempotent within a
    calendar day.
    """
    owner_id = current_owner_id()
    runner = orchestrator or _get_default_orchestrator()
    return runner.refresh(owner_id, caller_id=owner_id).as_payload()


__all__ = [
    "RefreshOrchestrator",
    "already_refreshed_today",
    "refresh_management_signals",
]
