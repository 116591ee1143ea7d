import logging
from typing import TypeVar, Generic, Type, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from kpta.core.exceptions import StorageError
from kpta.models.base import IdentifiedModel

T = TypeVar('T', bound=IdentifiedModel)

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    def __init__(self, model_class: Type[T]):
        self.model_class = model_class

    async def get_by_id(self, db: AsyncSession, id: str) -> Optional[T]:
        """Get record by ID"""
        try:
            result = await db.execute(select(self.model_class).where(self.model_class.id == id))
        except SQLAlchemyError as e:
            raise await self._storage_error(db, f"loading {self.model_class.__tablename__} {id}", e) from e
        return result.scalar_one_or_none()

    async def get_owned(self, db: AsyncSession, id: str, user_id: str) -> Optional[T]:
        """Get record by ID only if it belongs to ``user_id``"""
        record = await self.get_by_id(db, id)
        if record is None or record.user_id != user_id:
            return None
        return record

    @staticmethod
    async def _storage_error(db: AsyncSession, action: str, cause: Exception, error_class=StorageError):
        """Roll the session back and wrap the driver error"""
        try:
            await db.rollback()
        except SQLAlchemyError as rollback_error:
            logger.warning(f"Rollback failed after storage error: {rollback_error}")
        return error_class(f"Storage failure while {action}: {cause}")
