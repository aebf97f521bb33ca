from __future__ import annotations

from typing import Any, Generic, Iterable, List, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import Executable, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.base import RECORD_ACTIVE, RECORD_DELETED

ModelT = TypeVar("ModelT")


class BaseRepository:
    """
    Base class for repositories providing common helpers.

    Repositories add and flush; the calling service decides when to commit so
    that multi-row operations (issuance + stock movements) land atomically.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def execute(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute a SQLAlchemy statement."""
        return await self.session.execute(statement, params or {})

    async def scalars(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute and return scalars."""
        result = await self.execute(statement, params)
        return result.scalars()

    async def scalar_one_or_none(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute and return a single scalar or None."""
        result = await self.execute(statement, params)
        return result.scalar_one_or_none()

    async def commit(self) -> None:
        """Commit current transaction."""
        await self.session.commit()

    async def flush(self) -> None:
        """Flush pending changes so generated ids/defaults are available."""
        await self.session.flush()

    async def add_all(self, entities: Iterable[Any]) -> None:
        """Add multiple entities to session."""
        self.session.add_all(list(entities))

    async def add(self, entity: Any) -> None:
        """Add a single entity to session."""
        self.session.add(entity)

    async def next_document_number(self, column, prefix: str, width: int = 3) -> str:
        """
        Next sequential document number for a prefix, e.g. ISS-20240101-007.

        Numbers are derived from the highest existing number sharing the prefix.
        """
        stmt = select(func.max(column)).where(column.like(f"{prefix}%"))
        current = await self.scalar_one_or_none(stmt)
        seq = 0
        if current:
            try:
                seq = int(str(current)[len(prefix):])
            except ValueError:
                seq = 0
        return f"{prefix}{seq + 1:0{width}d}"


class SoftDeleteRepository(BaseRepository, Generic[ModelT]):
    """
    CRUD helpers for models carrying RecordStatusMixin. Reads only ever return
    live rows; delete flips record_status to 0.
    """

    model: Type[ModelT]

    def _live(self):
        return select(self.model).where(self.model.record_status == RECORD_ACTIVE)

    async def get(self, entity_id: UUID) -> Optional[ModelT]:
        stmt = self._live().where(self.model.id == entity_id)
        return await self.scalar_one_or_none(stmt)

    async def list(self, *filters, order_by=None, limit: int = 100, offset: int = 0) -> List[ModelT]:
        stmt = self._live()
        for clause in filters:
            stmt = stmt.where(clause)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        stmt = stmt.offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def exists(self, *filters, exclude_id: Optional[UUID] = None) -> bool:
        stmt = select(func.count()).select_from(self.model).where(self.model.record_status == RECORD_ACTIVE)
        for clause in filters:
            stmt = stmt.where(clause)
        if exclude_id is not None:
            stmt = stmt.where(self.model.id != exclude_id)
        res = await self.execute(stmt)
        return int(res.scalar_one()) > 0

    async def create(self, **values: Any) -> ModelT:
        row = self.model(**values)
        await self.add(row)
        await self.flush()
        return row

    async def update(self, entity_id: UUID, **values: Any) -> Optional[ModelT]:
        row = await self.get(entity_id)
        if row is None:
            return None
        for key, value in values.items():
            setattr(row, key, value)
        await self.flush()
        return row

    async def soft_delete(self, entity_id: UUID) -> bool:
        stmt = (
            update(self.model)
            .where(self.model.id == entity_id, self.model.record_status == RECORD_ACTIVE)
            .values(record_status=RECORD_DELETED)
            .execution_options(synchronize_session="fetch")
        )
        res = await self.execute(stmt)
        return (res.rowcount or 0) > 0
