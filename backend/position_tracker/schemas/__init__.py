# backend/position_tracker/schemas/__init__.py
"""
Pydantic schemas for API serialization.

Internal engine types live in position_tracker/services/positions/types.py;
routers map them onto these schemas.
"""

from position_tracker.schemas.errors import ErrorDetail
from position_tracker.schemas.positions import (
    PositionSnapshotSchema,
    PositionsResponse,
    QuoteSchema,
)

__all__ = [
    "ErrorDetail",
    "PositionSnapshotSchema",
    "PositionsResponse",
    "QuoteSchema",
]
