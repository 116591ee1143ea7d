from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from .base import BaseRepository
from kpta.core.exceptions import CacheWriteError
from kpta.models.base import new_id, utcnow
from kpta.models.insight import InsightCacheDB


class InsightCacheRepository(BaseRepository[InsightCacheDB]):
    """Keyed storage of the last computed insight snapshot per (user, insight type)"""

    def __init__(self):
        super().__init__(InsightCacheDB)

    async def get(self, db: AsyncSession, user_id: str, insight_type: str) -> Optional[InsightCacheDB]:
        """Get the cache entry, raising StorageError if the table cannot be read"""
        try:
            result = await db.execute(
                select(InsightCacheDB)
                .where(InsightCacheDB.user_id == user_id, InsightCacheDB.insight_type == insight_type)
            )
        except SQLAlchemyError as e:
            raise await self._storage_error(db, f"reading insight cache for {user_id}", e) from e
        return result.scalar_one_or_none()

    async def put(
        self,
        db: AsyncSession,
        user_id: str,
        insight_type: str,
        data: Dict[str, Any],
        retrospective_count: int
    ) -> None:
        """Upsert the entry for (user_id, insight_type); last writer wins"""
        now = utcnow()
        try:
            insert = postgresql.insert if db.get_bind().dialect.name == "postgresql" else sqlite.insert
            stmt = insert(InsightCacheDB).values(
                id=new_id(),
                user_id=user_id,
                insight_type=insight_type,
                data=data,
                retrospective_count=retrospective_count,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[InsightCacheDB.user_id, InsightCacheDB.insight_type],
                set_={
                    "data": stmt.excluded.data,
                    "retrospective_count": stmt.excluded.retrospective_count,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            await db.execute(stmt)
            await db.commit()
        except SQLAlchemyError as e:
            raise await self._storage_error(db, f"writing insight cache for {user_id}", e, CacheWriteError) from e
