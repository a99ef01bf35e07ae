"""
Studio Signals - follow-up automation for a single-studio fitness practice.

Scans each owner's attendance and payment history and turns risk signals into
follow-up tasks and notifications:

- No-show risk: repeated no-shows over the last 28 days
- Attendance drop: attendance halved (or worse) versus the previous 28 days
- Pending unpaid risk: unpaid monthly package with many lessons still pending

Refreshes run at most once per owner per day, inside one PostgreSQL
transaction, and upsert on natural keys so re-runs never duplicate rows.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from studio_signals.config import Settings, get_settings
from studio_signals.domain.models import RefreshResult
from studio_signals.errors import (
    ConstraintViolation,
    DataSourceFailure,
    InvalidSettings,
    NotFound,
    SignalError,
    Unauthenticated,
)
from studio_signals.identity import authenticated_as, current_owner_id
from studio_signals.orchestrator import RefreshOrchestrator, refresh_management_signals
from studio_signals.rules import available_rules, default_rules
from studio_signals.upserter import SignalUpserter
from studio_signals.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Refresh
    "RefreshOrchestrator",
    "RefreshResult",
    "refresh_management_signals",
    "SignalUpserter",
    # Rules
    "available_rules",
    "default_rules",
    # Identity
    "authenticated_as",
    "current_owner_id",
    # Errors
    "ConstraintViolation",
    "DataSourceFailure",
    "InvalidSettings",
    "NotFound",
    "SignalError",
    "Unauthenticated",
    # Logging
    "configure_logging",
    "get_logger",
]
