"""
Ambient caller identity.

The identity provider lives outside this package. Whatever layer authenticates
the request (a web handler, the CLI, a scheduler) binds the owner id for the
duration of the call with ``authenticated_as``; the refresh entry point reads it
back with ``current_owner_id``.
"""

from __future__ import annotations

import contextlib
from contextvars import ContextVar
from typing import Generator, Optional
from uuid import UUID

from studio_signals.errors import Unauthenticated

_current_owner: ContextVar[Optional[UUID]] = ContextVar("studio_signals_owner", default=None)


@contextlib.contextmanager
def authenticated_as(owner_id: UUID) -> Generator[UUID, None, None]:
    """Bind ``owner_id`` as the caller identity within the block."""
    token = _current_owner.set(owner_id)
    try:
        yield owner_id
    finally:
        _current_owner.reset(token)


def current_owner_id() -> UUID:
    """
    Return the bound caller identity.

    Raises
    ------
    Unauthenticated
        If no identity is bound in the current context.
    """
    owner_id = _current_owner.get()
    if owner_id is None:
        raise Unauthenticated("not authenticated")
    return owner_id


__all__ = ["authenticated_as", "current_owner_id"]
