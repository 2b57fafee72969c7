# backend/position_tracker/utils/context.py
"""
Correlation ID of the request being served.

Stored in a ContextVar, so it follows async/await calls. Worker threads
start with an empty context; the backfill coordinator runs each task via
``contextvars.copy_context().run`` so fetch logs keep the request's ID.

Usage:
    from position_tracker.utils.context import correlation_scope, get_correlation_id

    with correlation_scope("abc-123"):
        get_correlation_id()  # "abc-123"
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    return _correlation_id_var.get()


@contextmanager
def correlation_scope(correlation_id: str) -> Iterator[str]:
    """Bind ``correlation_id`` for the duration of the block, then restore the previous value."""
    token = _correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id_var.reset(token)
