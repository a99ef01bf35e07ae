"""
Error taxonomy for Studio Signals.

Every failure raised by the refresh engine derives from SignalError so callers
(CLI, schedulers) can report it uniformly. Storage-level exceptions are wrapped
at the repository boundary and chained with ``raise ... from``.
"""

from __future__ import annotations


class SignalError(Exception):
    """Base class for all Studio Signals errors."""


class Unauthenticated(SignalError):
    """No resolvable caller identity, or the caller is not the owner."""


class DataSourceFailure(SignalError):
    """Reading or writing the studio store failed (e.g. the database is unavailable)."""


class ConstraintViolation(SignalError):
    """An upsert hit a uniqueness or check constraint it should have resolved."""


class InvalidSettings(SignalError):
    """An automation settings update is out of range or names an unknown field."""


class NotFound(SignalError):
    """A task or notification does not exist for the owner."""


__all__ = [
    "SignalError",
    "Unauthenticated",
    "DataSourceFailure",
    "ConstraintViolation",
    "InvalidSettings",
    "NotFound",
]
