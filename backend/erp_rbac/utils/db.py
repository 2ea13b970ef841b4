"""Session helpers shared by the authorization services.

Upserts rely on the table's unique constraint, not on the preceding lookup:
the insert runs inside a SAVEPOINT and a concurrent winner is re-read on
IntegrityError, so replicas seeding at the same time converge on one row.
"""
from __future__ import annotations
from typing import Any, Dict, Optional, Tuple, Type, TypeVar
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

T = TypeVar('T')


def get_or_create(session, model: Type[T], defaults: Optional[Dict[str, Any]] = None, **lookup: Any) -> Tuple[T, bool]:
    """Return (instance, created) for the row matching ``lookup``."""
    stmt = select(model).filter_by(**lookup)
    obj = session.execute(stmt).scalar_one_or_none()
    if obj is not None:
        return obj, False
    try:
        with session.begin_nested():
            obj = model(**lookup, **(defaults or {}))
            session.add(obj)
    except IntegrityError:
        obj = session.execute(stmt).scalar_one_or_none()
        if obj is None:
            # constraint violated by something other than the lookup key
            raise
        return obj, False
    return obj, True


def finish(session, commit: bool = True) -> None:
    """Commit the unit of work, or just flush when the caller owns the transaction."""
    if commit:
        session.commit()
    else:
        session.flush()


__all__ = ['get_or_create', 'finish']
