"""
Base Repository Pattern
Provides generic data access for all entities

Repositories never commit. The caller owns the unit of work:

    async with session.begin():
        repo = UserRepository(session)
        ...
"""

from typing import Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar, cast

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute
import logging

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType")


class BaseRepository(Generic[ModelType]):
    """
    Generic repository over one mapped class

    Usage:
        class VideoRepository(BaseRepository[Video]):
            def __init__(self, session: AsyncSession):
                super().__init__(session, Video)
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        """
        Initialize repository

        Args:
            session: Database session
            model: SQLAlchemy model class
        """
        self.session = session
        self.model = model

    def _id_col(self) -> InstrumentedAttribute:
        return cast(InstrumentedAttribute, getattr(self.model, "id"))

    def _apply_filters(self, query, filters: Dict[str, Any]):
        for key, value in filters.items():
            column = getattr(self.model, key, None)
            if column is None:
                raise AttributeError(f"{self.model.__name__} has no column {key}")
            if value is None:
                query = query.where(column.is_(None))
            else:
                query = query.where(column == value)
        return query

    # ========================================================================
    # CREATE Operations
    # ========================================================================

    async def create(self, **kwargs) -> ModelType:
        """
        Stage a new entity and flush it

        Args:
            **kwargs: Model attributes

        Returns:
            Created model instance
        """
        instance: ModelType = cast(Any, self.model)(**kwargs)
        self.session.add(instance)
        await self.session.flush()
        logger.debug(f"Staged {self.model.__name__}: {kwargs.get('id', 'N/A')}")
        return instance

    # ========================================================================
    # READ Operations
    # ========================================================================

    async def get_by_id(self, id: Any) -> Optional[ModelType]:
        """
        Get entity by primary key

        Args:
            id: Entity ID (tuple for composite keys)

        Returns:
            Model instance or None
        """
        result = await self.session.get(self.model, id)
        return cast(Optional[ModelType], result)

    async def count(self, **filters) -> int:
        """
        Count entities matching filters

        Args:
            **filters: Filter conditions

        Returns:
            Count of matching records
        """
        query = self._apply_filters(select(func.count()).select_from(self.model), filters)
        result = await self.session.execute(query)
        return int(result.scalar_one_or_none() or 0)

    async def find_one_by(self, **filters) -> Optional[ModelType]:
        """Find first entity matching filters"""
        query = self._apply_filters(select(self.model), filters).limit(1)
        result = await self.session.execute(query)
        return result.scalars().first()

    async def page_after(
        self, after_id: Optional[Any] = None, limit: int = 500, **filters
    ) -> List[ModelType]:
        """
        Keyset page ordered by id

        Args:
            after_id: Last id of the previous page (None for the first page)
            limit: Page size
            **filters: Extra equality filters

        Returns:
            Up to `limit` entities with id > after_id
        """
        query = self._apply_filters(select(self.model), filters)
        if after_id is not None:
            query = query.where(self._id_col() > after_id)
        query = query.order_by(self._id_col()).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # ========================================================================
    # DELETE Operations
    # ========================================================================

    async def delete(self, instance: ModelType) -> None:
        """Stage deletion of a loaded entity"""
        await self.session.delete(instance)
        await self.session.flush()

    async def delete_where(self, *criteria, **filters) -> int:
        """
        Bulk delete rows matching criteria

        Returns:
            Number of deleted rows
        """
        stmt = self._apply_filters(delete(self.model), filters)
        if criteria:
            stmt = stmt.where(*criteria)
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def delete_many(self, ids: Sequence[Any]) -> int:
        """Delete multiple entities by IDs"""
        if not ids:
            return 0
        return await self.delete_where(self._id_col().in_(list(ids)))
