"""
Document store adapter over an AsyncSession.

The match engine only needs key/predicate access plus one atomic primitive:
a conditional update keyed by entity id and guarded by a version counter.
Collections are ORM model classes.
"""

import os
from typing import Any, List, Optional, Sequence, Type
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
import logging

logger = logging.getLogger(__name__)

# Attempts per operation before a lost conditional update surfaces as ConcurrencyError
MAX_CONDITIONAL_RETRIES = int(os.getenv("MATCH_UPDATE_MAX_RETRIES", "3"))


class DocumentStore:
    """Thin get/put/query/conditional_update facade used by the services."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, model: Type[Any], record_id: Any, fresh: bool = True) -> Optional[Any]:
        """
        Fetch a record by primary key.

        Args:
            model: ORM model class (the collection)
            record_id: Primary key value
            fresh: If True, bypass the identity map so concurrent writes are visible

        Returns:
            The record or None
        """
        query = select(model).where(_primary_key(model) == record_id)
        if fresh:
            query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def put(self, record: Any) -> Any:
        """Insert (or re-attach) a record and flush so generated ids are available."""
        self.session.add(record)
        await self.session.flush()
        return record

    async def query(
        self,
        model: Type[Any],
        *criteria: Any,
        order_by: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Any]:
        """Return all records of a collection matching every criterion."""
        query = select(model).where(*criteria).execution_options(populate_existing=True)
        if order_by:
            query = query.order_by(*order_by)
        if limit is not None:
            query = query.limit(limit)
        if offset:
            query = query.offset(offset)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def conditional_update(
        self,
        model: Type[Any],
        record_id: Any,
        expected_version: int,
        **values: Any,
    ) -> bool:
        """
        Atomically update a record only if its version is still expected_version.

        The version is bumped as part of the same statement. Callers re-read and
        retry on False.

        Returns:
            True if the row was updated, False if another writer got there first
        """
        result = await self.session.execute(
            update(model)
            .where(_primary_key(model) == record_id, model.version == expected_version)
            .values(version=expected_version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        updated = result.rowcount == 1
        if not updated:
            logger.debug(
                f"Conditional update on {model.__tablename__} id={record_id} "
                f"lost (expected version {expected_version})"
            )
        return updated

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


def _primary_key(model: Type[Any]):
    """Return the single primary-key column of a model."""
    columns = model.__table__.primary_key.columns
    if len(columns) != 1:
        raise TypeError(f"{model.__name__} must have a single-column primary key")
    return getattr(model, next(iter(columns)).name)
