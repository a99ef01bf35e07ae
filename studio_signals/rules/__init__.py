"""
Rules package for Studio Signals.

Re-exports the abstract interfaces and the concrete rules, and provides the
registry the orchestrator evaluates, in its fixed order.
"""

from typing import Callable, Dict, List

from studio_signals.rules.abstract import AbstractSignalRule, RuleSnapshot, SignalRule
from studio_signals.rules.attendance_drop import AttendanceDropRule
from studio_signals.rules.no_show import NoShowRiskRule
from studio_signals.rules.pending_unpaid import PendingUnpaidRiskRule


def _rule_factories() -> Dict[str, Callable[[], SignalRule]]:
    """Registry of available rules, in evaluation order."""
    return {
        NoShowRiskRule.rule_key: NoShowRiskRule,
        AttendanceDropRule.rule_key: AttendanceDropRule,
        PendingUnpaidRiskRule.rule_key: PendingUnpaidRiskRule,
    }


def available_rules() -> List[str]:
    """List rule keys in evaluation order."""
    return list(_rule_factories().keys())


def default_rules() -> List[SignalRule]:
    """Fresh instances of every rule, in evaluation order."""
    return [factory() for factory in _rule_factories().values()]


__all__ = [
    # Abstracts
    "AbstractSignalRule",
    "RuleSnapshot",
    "SignalRule",
    # Concrete rules
    "AttendanceDropRule",
    "NoShowRiskRule",
    "PendingUnpaidRiskRule",
    # Registry
    "available_rules",
    "default_rules",
]
