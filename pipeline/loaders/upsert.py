"""
Dialect-aware INSERT ... ON CONFLICT helpers.

PostgreSQL in production, SQLite in tests; both support the same
ON CONFLICT clause through their dialect's `insert()` construct.
"""

from typing import Any, Dict, Iterable, List, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def dialect_insert(db: AsyncSession, model):
    dialect = db.get_bind().dialect.name
    try:
        return _INSERT_BY_DIALECT[dialect](model)
    except KeyError:
        raise NotImplementedError(f"Upserts are not supported on {dialect}")


async def insert_ignore(
    db: AsyncSession,
    model,
    rows: List[Dict[str, Any]],
    conflict_columns: Sequence[str],
) -> None:
    """INSERT ... ON CONFLICT (conflict_columns) DO NOTHING"""
    if not rows:
        return
    stmt = dialect_insert(db, model).values(rows)
    stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict_columns))
    await db.execute(stmt)


async def insert_or_update(
    db: AsyncSession,
    model,
    row: Dict[str, Any],
    conflict_columns: Sequence[str],
    update_columns: Iterable[str],
) -> None:
    """INSERT ... ON CONFLICT (conflict_columns) DO UPDATE SET update_columns"""
    stmt = dialect_insert(db, model).values(**row)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_={column: stmt.excluded[column] for column in update_columns},
    )
    await db.execute(stmt)
