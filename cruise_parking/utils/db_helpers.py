"""
Database helpers for concurrent writers.

Two writers touch shared rows: the order upsert (one row per feed order) and
the aggregate rebuild (the single aggregate_state row). On PostgreSQL both
take SELECT ... FOR UPDATE so concurrent writers queue up. SQLite allows one
writer at a time anyway, so there the lock is a plain read.
"""

from typing import Optional, Type, TypeVar

from sqlalchemy.orm import Session

T = TypeVar('T')


def dialect_name(db: Session) -> Optional[str]:
    bind = db.get_bind()
    return bind.dialect.name if bind is not None else None


def is_postgres(db: Session) -> bool:
    return dialect_name(db) == "postgresql"


def acquire_row_lock(db: Session, model: Type[T], filter_condition) -> Optional[T]:
    """
    Load the first row matching filter_condition, locked until the
    transaction ends.

    Returns None when no row matches; in that case nothing is locked and
    the caller's insert is guarded by the table's unique constraint.

    Example:
        order = acquire_row_lock(db, Order, Order.external_id == 1001)
    """
    query = db.query(model).filter(filter_condition)
    if is_postgres(db):
        query = query.with_for_update()
    return query.first()
