#!/usr/bin/env python3
# backend/init_db.py
"""
Database initialization script.

This script can be run from any directory:
    python backend/init_db.py
    cd backend && python init_db.py

Production deployments should use the Alembic migrations instead.
"""
import sys
from pathlib import Path

# Add the backend directory to Python path so 'position_tracker' is importable
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from position_tracker.database import engine
from position_tracker.models import Base


def init_db() -> None:
    """Create the quotes, quote_prices and investments tables."""
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    print("Tables created successfully!")


if __name__ == "__main__":
    init_db()
