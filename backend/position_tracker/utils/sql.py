# backend/position_tracker/utils/sql.py
"""
SQL utility functions.

This module provides helpers for statements whose syntax differs between
the supported databases:
- upsert: INSERT ... ON CONFLICT DO UPDATE for PostgreSQL and SQLite

Usage:
    from position_tracker.utils.sql import upsert

    stmt = upsert(db, QuotePrice, records, ["quote_id", "date"], ["close"])
    db.execute(stmt)
"""

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session


def upsert(
        db: Session,
        model: type,
        records: list[dict[str, Any]],
        index_elements: list[str],
        update_columns: list[str],
):
    """
    Build a bulk INSERT ... ON CONFLICT DO UPDATE for the session's dialect.

    Args:
        db: Session whose bind decides the dialect
        model: Mapped class to insert into
        records: Rows as column → value dicts
        index_elements: Columns of the unique constraint that detects conflicts
        update_columns: Columns overwritten from the incoming row on conflict

    Returns:
        Executable insert statement

    Raises:
        NotImplementedError: For dialects other than postgresql and sqlite
    """
    dialect = db.get_bind().dialect.name

    if dialect == "postgresql":
        stmt = pg_insert(model).values(records)
    elif dialect == "sqlite":
        stmt = sqlite_insert(model).values(records)
    else:
        raise NotImplementedError(f"Upsert is not supported for dialect '{dialect}'")

    return stmt.on_conflict_do_update(
        index_elements=index_elements,
        set_={column: stmt.excluded[column] for column in update_columns},
    )
