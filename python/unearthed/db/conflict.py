"""Dialect-aware "INSERT ... ON CONFLICT DO NOTHING" builder.

Skip-on-conflict inserts are how the schema's unique constraints become
idempotent writes: concurrent or repeated submissions converge on one row
per natural key, and RETURNING reports only the rows this statement created.
"""

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def insert_ignoring_conflicts(db: Session, model: Any, rows: list[dict[str, Any]]):
    """Build an insert of ``rows`` into ``model`` that skips conflicting rows.

    Args:
        db: Session whose bind decides the SQL dialect.
        model: ORM class to insert into.
        rows: Column value dicts. Must be non-empty.

    Returns:
        An insert statement; chain ``.returning(...)`` to read back created rows.

    Raises:
        RuntimeError: If the bound dialect has no ON CONFLICT support.
    """
    dialect = db.get_bind().dialect.name
    insert_fn = _INSERT_BY_DIALECT.get(dialect)
    if insert_fn is None:
        raise RuntimeError(f"Skip-on-conflict insert is not supported for dialect {dialect!r}")
    return insert_fn(model).values(rows).on_conflict_do_nothing()
