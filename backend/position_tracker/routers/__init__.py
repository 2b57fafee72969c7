# backend/position_tracker/routers/__init__.py
from position_tracker.routers.positions import router as positions_router

__all__ = [
    "positions_router",
]
