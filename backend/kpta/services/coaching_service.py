"""
Single-call coaching flows: Try ideas from a retrospective's problems, action items
from a Try, and a one-retrospective summary
"""

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from kpta.agents.client import AnalysisClient
from kpta.agents.models import (
    AnalysisKind,
    ActionRequestInput,
    ActionSuggestion,
    RetrospectiveSummary,
    TryRequestInput,
    TrySuggestion,
)
from kpta.agents.normalizer import normalize, fallback_result
from kpta.core.config import settings
from kpta.core.exceptions import AnalysisError, NotFoundError
from kpta.models.base import utcnow
from kpta.models.retrospective import ActionDB
from kpta.repositories.retrospective import RetrospectiveRepository, ActionRepository

logger = logging.getLogger(__name__)


def deadline_from_days(days: int, now: Optional[datetime] = None) -> date:
    """Absolute due date for a suggestion accepted at ``now``"""
    now = now or utcnow()
    return (now + timedelta(days=days)).date()


class CoachingService:
    def __init__(
        self,
        analysis_client: Optional[AnalysisClient] = None,
        retro_repo: Optional[RetrospectiveRepository] = None,
        action_repo: Optional[ActionRepository] = None,
    ):
        self.analysis_client = analysis_client or AnalysisClient()
        self.retro_repo = retro_repo or RetrospectiveRepository()
        self.action_repo = action_repo or ActionRepository()

    async def suggest_actions(self, try_text: str, problems: Sequence[str]) -> List[ActionSuggestion]:
        """Ordered action suggestions for a Try; a single 7-day action if the model path fails"""
        request = ActionRequestInput(try_text=try_text, problems=list(problems))
        try:
            raw_text = await self.analysis_client.generate_actions(request.try_text, request.problems)
        except AnalysisError as e:
            logger.warning(f"Action generation unavailable, using fallback: {e}")
            return fallback_result(AnalysisKind.ACTIONS, request).value
        return normalize(AnalysisKind.ACTIONS, raw_text, request).value

    async def accept_actions(
        self,
        db: AsyncSession,
        user_id: str,
        retrospective_id: str,
        suggestions: Sequence[ActionSuggestion],
        try_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[ActionDB]:
        """Persist accepted suggestions, turning relative deadlines into due dates"""
        retro = await self.retro_repo.get_owned(db, retrospective_id, user_id)
        if retro is None:
            raise NotFoundError(f"Retrospective {retrospective_id} not found")

        now = now or utcnow()
        items = [(s.text, deadline_from_days(s.suggested_deadline_days, now)) for s in suggestions]
        actions = await self.action_repo.create_actions(db, user_id, retrospective_id, items, try_id=try_id)
        logger.info(f"Accepted {len(actions)} actions for retrospective {retrospective_id}")
        return actions

    async def summarize_retrospective(self, db: AsyncSession, user_id: str, retrospective_id: str) -> RetrospectiveSummary:
        """Short feedback for one retrospective; derived from item counts if the model path fails"""
        retro = await self.retro_repo.get_with_items(db, user_id, retrospective_id)
        if retro is None:
            raise NotFoundError(f"Retrospective {retrospective_id} not found")

        try:
            raw_text = await self.analysis_client.summarize(retro)
        except AnalysisError as e:
            logger.warning(f"Summary unavailable for {retrospective_id}, using fallback: {e}")
            return fallback_result(AnalysisKind.SUMMARY, retro).value
        return normalize(AnalysisKind.SUMMARY, raw_text, retro).value

    async def suggest_tries(self, db: AsyncSession, user_id: str, retrospective_id: str) -> List[TrySuggestion]:
        """
        Try ideas for a retrospective's problems, building on its keeps.

        Problems from the user's most recent other completed retrospectives are
        passed along as context. A retrospective without problems gets no
        suggestions and no model call.
        """
        retro = await self.retro_repo.get_with_items(db, user_id, retrospective_id)
        if retro is None:
            raise NotFoundError(f"Retrospective {retrospective_id} not found")
        if not retro.problems:
            return []

        context_size = settings.TRY_PAST_CONTEXT_SESSIONS
        recent = await self.retro_repo.get_completed_with_items(db, user_id, context_size + 1)
        past_problems = [s.problems for s in reversed(recent) if s.id != retro.id and s.problems][:context_size]
        request = TryRequestInput(problems=list(retro.problems), keeps=list(retro.keeps), past_problems=past_problems)

        try:
            raw_text = await self.analysis_client.suggest_tries(request)
        except AnalysisError as e:
            logger.warning(f"Try suggestions unavailable for {retrospective_id}, using fallback: {e}")
            return fallback_result(AnalysisKind.TRIES, request).value
        return normalize(AnalysisKind.TRIES, raw_text, request).value
