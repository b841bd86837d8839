"""Insert-or-update helper keyed by a natural unique constraint."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import insert, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

_NATIVE_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def upsert(
    db: Session,
    model: type[Any],
    values: Mapping[str, Any],
    conflict_columns: Sequence[str],
    update_values: Mapping[str, Any],
) -> None:
    """Insert ``values`` or, if the unique key already exists, apply ``update_values``.

    The unique constraint on ``conflict_columns`` decides which branch runs, so
    two sessions racing on the same key never produce two rows. The statement
    runs in the caller's transaction; committing is left to the caller.
    """
    dialect = db.get_bind().dialect.name
    native_insert = _NATIVE_INSERTS.get(dialect)
    if native_insert is not None:
        stmt = native_insert(model).values(**values)
        stmt = stmt.on_conflict_do_update(index_elements=list(conflict_columns), set_=dict(update_values))
        db.execute(stmt)
        return

    # Dialects without ON CONFLICT: let the constraint reject the insert, then update.
    savepoint = db.begin_nested()
    try:
        db.execute(insert(model).values(**values))
        savepoint.commit()
    except IntegrityError:
        savepoint.rollback()
        key = [getattr(model, column) == values[column] for column in conflict_columns]
        db.execute(update(model).where(*key).values(**update_values))
