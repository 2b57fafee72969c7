# backend/position_tracker/utils/__init__.py
"""
Cross-cutting helpers.

- logging: setup_logging, correlation ID filter, JSON formatter
- context: correlation ID of the current request
- date_utils: calendar walks, UTC normalization, flexible date parsing
- sql: dialect-aware upserts

Usage:
    from position_tracker.utils import setup_logging
    from position_tracker.utils.date_utils import date_range
"""

from position_tracker.utils.context import correlation_scope, get_correlation_id
from position_tracker.utils.logging import setup_logging

__all__ = [
    "setup_logging",
    "correlation_scope",
    "get_correlation_id",
]
