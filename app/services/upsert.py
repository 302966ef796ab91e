from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session


def insert_or_ignore(db: Session, model, values: dict[str, Any], index_elements: list[str]) -> bool:
    """INSERT ... ON CONFLICT DO NOTHING against a unique constraint.

    Returns True when this call created the row. Concurrent callers racing on
    the same key get exactly one winner; the others see False.
    """
    insert = sqlite_insert if db.get_bind().dialect.name == "sqlite" else pg_insert
    stmt = insert(model.__table__).values(**values).on_conflict_do_nothing(index_elements=index_elements)
    result = db.execute(stmt)
    return result.rowcount > 0
