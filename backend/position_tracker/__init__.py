# backend/position_tracker/__init__.py
"""Position Tracker: daily FIFO position snapshots for investment ledgers."""

__version__ = "0.1.0"
