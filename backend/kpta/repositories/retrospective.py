from typing import Dict, List, Optional, Sequence, Tuple
from datetime import date
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc
from sqlalchemy.exc import SQLAlchemyError

from .base import BaseRepository
from kpta.agents.models import RetrospectiveItems
from kpta.models.base import utcnow
from kpta.models.retrospective import (
    RetrospectiveDB, KeepDB, ProblemDB, TryDB, ActionDB, STATUS_COMPLETED
)


class RetrospectiveRepository(BaseRepository[RetrospectiveDB]):
    """Read side of the retrospective store used by the insights pipeline"""

    def __init__(self):
        super().__init__(RetrospectiveDB)

    async def count_completed(self, db: AsyncSession, user_id: str) -> int:
        """Count completed retrospectives without touching item tables"""
        try:
            result = await db.execute(
                select(func.count(RetrospectiveDB.id))
                .where(RetrospectiveDB.user_id == user_id, RetrospectiveDB.status == STATUS_COMPLETED)
            )
        except SQLAlchemyError as e:
            raise await self._storage_error(db, f"counting retrospectives for {user_id}", e) from e
        return result.scalar_one() or 0

    async def get_completed_with_items(self, db: AsyncSession, user_id: str, limit: int) -> List[RetrospectiveItems]:
        """Most recent ``limit`` completed retrospectives, oldest first, joined with their items"""
        try:
            result = await db.execute(
                select(RetrospectiveDB.id, RetrospectiveDB.title, RetrospectiveDB.created_at)
                .where(RetrospectiveDB.user_id == user_id, RetrospectiveDB.status == STATUS_COMPLETED)
                .order_by(desc(RetrospectiveDB.created_at), desc(RetrospectiveDB.id))
                .limit(limit)
            )
            rows = list(reversed(result.all()))
            sessions = [RetrospectiveItems(id=row.id, title=row.title, created_at=row.created_at) for row in rows]
            await self._attach_items(db, sessions)
        except SQLAlchemyError as e:
            raise await self._storage_error(db, f"fetching retrospectives for {user_id}", e) from e
        return sessions

    async def get_with_items(self, db: AsyncSession, user_id: str, retrospective_id: str) -> Optional[RetrospectiveItems]:
        """Single retrospective with its items, or None if missing or not owned"""
        retro = await self.get_owned(db, retrospective_id, user_id)
        if retro is None:
            return None
        session = RetrospectiveItems(id=retro.id, title=retro.title, created_at=retro.created_at)
        try:
            await self._attach_items(db, [session])
        except SQLAlchemyError as e:
            raise await self._storage_error(db, f"fetching items for {retrospective_id}", e) from e
        return session

    async def _attach_items(self, db: AsyncSession, sessions: Sequence[RetrospectiveItems]) -> None:
        """Load keep/problem/try texts for all sessions and re-join them to their owner"""
        if not sessions:
            return
        by_id: Dict[str, RetrospectiveItems] = {s.id: s for s in sessions}
        ids = list(by_id)
        for model, attr in ((KeepDB, "keeps"), (ProblemDB, "problems"), (TryDB, "tries")):
            result = await db.execute(
                select(model.retrospective_id, model.text)
                .where(model.retrospective_id.in_(ids))
                .order_by(model.retrospective_id, model.order_index, model.created_at)
            )
            for retrospective_id, text in result.all():
                getattr(by_id[retrospective_id], attr).append(text)

    async def mark_completed(self, db: AsyncSession, retrospective_id: str, user_id: str) -> Optional[RetrospectiveDB]:
        """Move a retrospective from draft to completed"""
        retro = await self.get_owned(db, retrospective_id, user_id)
        if retro is None:
            return None
        if retro.status != STATUS_COMPLETED:
            retro.status = STATUS_COMPLETED
            retro.updated_at = utcnow()
            try:
                await db.commit()
            except SQLAlchemyError as e:
                raise await self._storage_error(db, f"completing {retrospective_id}", e) from e
        return retro

    async def delete_retrospective(self, db: AsyncSession, retrospective_id: str, user_id: str) -> bool:
        """Delete a retrospective; its items go with it via ON DELETE CASCADE"""
        retro = await self.get_owned(db, retrospective_id, user_id)
        if retro is None:
            return False
        try:
            await db.delete(retro)
            await db.commit()
        except SQLAlchemyError as e:
            raise await self._storage_error(db, f"deleting {retrospective_id}", e) from e
        return True


class ActionRepository(BaseRepository[ActionDB]):
    def __init__(self):
        super().__init__(ActionDB)

    async def get_next_order_index(self, db: AsyncSession, retrospective_id: str) -> int:
        """Next free ordinal for actions in a retrospective"""
        result = await db.execute(
            select(func.max(ActionDB.order_index))
            .where(ActionDB.retrospective_id == retrospective_id)
        )
        max_index = result.scalar()
        return 0 if max_index is None else max_index + 1

    async def create_actions(
        self,
        db: AsyncSession,
        user_id: str,
        retrospective_id: str,
        items: Sequence[Tuple[str, date]],
        try_id: Optional[str] = None,
    ) -> List[ActionDB]:
        """Insert (text, due_date) pairs after the existing actions of a retrospective"""
        try:
            next_index = await self.get_next_order_index(db, retrospective_id)
            actions = [
                ActionDB(
                    user_id=user_id,
                    retrospective_id=retrospective_id,
                    try_id=try_id,
                    text=text,
                    due_date=due_date,
                    order_index=next_index + offset,
                )
                for offset, (text, due_date) in enumerate(items)
            ]
            db.add_all(actions)
            await db.commit()
            for action in actions:
                await db.refresh(action)
        except SQLAlchemyError as e:
            raise await self._storage_error(db, f"creating actions for {retrospective_id}", e) from e
        return actions
