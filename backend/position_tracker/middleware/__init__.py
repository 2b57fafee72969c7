# backend/position_tracker/middleware/__init__.py
"""
Middleware components for the Position Tracker.

- Correlation ID tracking for request tracing
- Rate limiting for the positions API

Usage:
    from position_tracker.middleware import CorrelationIdMiddleware, limiter

    app.add_middleware(CorrelationIdMiddleware)
    app.state.limiter = limiter
"""

from position_tracker.middleware.correlation import CorrelationIdMiddleware
from position_tracker.middleware.rate_limit import limiter, rate_limit_exceeded_handler

__all__ = [
    "CorrelationIdMiddleware",
    "limiter",
    "rate_limit_exceeded_handler",
]
