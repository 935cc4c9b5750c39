"""
Row-level locking helper.

All mutations to a lease serialize on the lease row.  On PostgreSQL this is
``SELECT ... FOR UPDATE``; the SQLite dialect drops the FOR UPDATE clause and
the engine's BEGIN IMMEDIATE already holds the database write lock.
"""

from typing import TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


def lock_for_update(
    session: Session,
    model: type[ModelType],
    row_id: UUID,
) -> ModelType | None:
    """Load ``model`` by id holding a write lock until the transaction ends.

    Returns None when the row does not exist.  The identity map is refreshed
    from the locked read so a reused session never sees stale attributes.
    """
    return session.execute(
        select(model)
        .where(model.id == row_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
