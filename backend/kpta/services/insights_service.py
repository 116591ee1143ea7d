"""
Insight aggregation pipeline for KPTA retrospectives.

CheckingCache -> CacheHit
              -> Fetching -> Analyzing -> Merging -> Persisting -> Done
Fetching may end in Errored; every later failure degrades to a fallback.

The cache entry is valid only while the user's completed-retrospective count
equals the count it was computed from. Recomputation is deterministic for a
given count and safe to race: concurrent runs for one user both upsert an
equivalent value.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence, Union

from sqlalchemy.ext.asyncio import AsyncSession

from kpta.agents.client import AnalysisClient
from kpta.agents.models import (
    AnalysisKind,
    PatternAnalysis,
    SentimentAnalysis,
)
from kpta.agents.normalizer import NormalizedResult, normalize, fallback_result
from kpta.core.config import settings
from kpta.core.exceptions import AnalysisError, CacheWriteError, StorageError
from kpta.models.api import InsightSnapshot, InsightsResponse, NotEnoughDataResponse, ThemeEntry
from kpta.repositories.insight_cache import InsightCacheRepository
from kpta.repositories.retrospective import RetrospectiveRepository

logger = logging.getLogger(__name__)


class InsightsStage(str, Enum):
    CHECKING_CACHE = "checking_cache"
    CACHE_HIT = "cache_hit"
    FETCHING = "fetching"
    ANALYZING = "analyzing"
    MERGING = "merging"
    PERSISTING = "persisting"
    DONE = "done"
    ERRORED = "errored"


InsightsResult = Union[InsightsResponse, NotEnoughDataResponse]


class InsightsService:
    """Service for producing cached insight snapshots from completed retrospectives"""

    def __init__(
        self,
        analysis_client: Optional[AnalysisClient] = None,
        retro_repo: Optional[RetrospectiveRepository] = None,
        cache_repo: Optional[InsightCacheRepository] = None,
        required_count: Optional[int] = None,
        top_themes: Optional[int] = None,
        insight_kind: Optional[str] = None,
    ):
        self.analysis_client = analysis_client or AnalysisClient()
        self.retro_repo = retro_repo or RetrospectiveRepository()
        self.cache_repo = cache_repo or InsightCacheRepository()
        self.required_count = settings.INSIGHTS_REQUIRED_SESSIONS if required_count is None else required_count
        self.top_themes = settings.INSIGHTS_TOP_THEMES if top_themes is None else top_themes
        self.insight_kind = insight_kind or settings.INSIGHTS_KIND

    async def get_insights(self, db: AsyncSession, user_id: str, limit: Optional[int] = None) -> InsightsResult:
        """
        Return the user's insight snapshot, recomputing it only when the
        completed-retrospective count has changed since it was cached.

        Raises StorageError when the retrospective store cannot be read.
        """
        limit = min(limit or settings.INSIGHTS_DEFAULT_LIMIT, settings.INSIGHTS_MAX_LIMIT)

        self._enter(user_id, InsightsStage.CHECKING_CACHE)
        try:
            current_count = await self.retro_repo.count_completed(db, user_id)
        except StorageError:
            self._enter(user_id, InsightsStage.ERRORED)
            logger.error(f"Could not count retrospectives for user {user_id}", exc_info=True)
            raise

        if current_count < self.required_count:
            logger.info(f"Not enough retrospectives for insights (user {user_id}: {current_count}/{self.required_count})")
            return self._not_enough_data(current_count)

        cached = await self._read_cache(db, user_id, current_count)
        if cached is not None:
            self._enter(user_id, InsightsStage.CACHE_HIT)
            return cached

        self._enter(user_id, InsightsStage.FETCHING)
        try:
            sessions = await self.retro_repo.get_completed_with_items(db, user_id, limit)
        except StorageError:
            self._enter(user_id, InsightsStage.ERRORED)
            logger.error(f"Could not fetch retrospectives for user {user_id}", exc_info=True)
            raise
        logger.info(f"Fetched {len(sessions)} retrospectives for user {user_id}")

        self._enter(user_id, InsightsStage.ANALYZING)
        sentiment_input = [s.for_sentiment() for s in sessions]
        patterns, sentiment = await asyncio.gather(
            self._run_analysis(AnalysisKind.PATTERNS, sessions, self.analysis_client.analyze_patterns),
            self._run_analysis(AnalysisKind.SENTIMENT, sentiment_input, self.analysis_client.analyze_sentiment),
        )

        self._enter(user_id, InsightsStage.MERGING)
        snapshot = self.merge(patterns.value, sentiment.value)

        self._enter(user_id, InsightsStage.PERSISTING)
        await self._write_cache(db, user_id, snapshot, current_count)

        self._enter(user_id, InsightsStage.DONE)
        return InsightsResponse(**snapshot.model_dump(), from_cache=False)

    def merge(self, patterns: PatternAnalysis, sentiment: SentimentAnalysis) -> InsightSnapshot:
        """Combine the two analyses into one snapshot"""
        themes = [
            ThemeEntry(theme=t.theme, category=t.category)
            for t in patterns.recurring_themes[:self.top_themes]
        ]
        recommendation = patterns.recommendations[0] if patterns.recommendations else settings.DEFAULT_RECOMMENDATION
        return InsightSnapshot(
            wellbeing_score=sentiment.wellbeing_score,
            wellbeing_trend=sentiment.sentiment_trend,
            top_themes=themes,
            key_recommendation=recommendation,
        )

    async def _run_analysis(
        self,
        kind: AnalysisKind,
        payload: Sequence,
        call: Callable[[Sequence], Awaitable[str]],
    ) -> NormalizedResult:
        """One analysis call; failures become the kind's fallback"""
        try:
            raw_text = await call(payload)
        except AnalysisError as e:
            logger.warning(f"[{kind.value}] analysis unavailable, using fallback: {e}")
            return fallback_result(kind, payload)
        result = normalize(kind, raw_text, payload)
        logger.debug(f"[{kind.value}] result source: {result.source.value}")
        return result

    async def _read_cache(self, db: AsyncSession, user_id: str, current_count: int) -> Optional[InsightsResponse]:
        """Valid cached snapshot, or None on miss, staleness or an unreadable cache"""
        try:
            entry = await self.cache_repo.get(db, user_id, self.insight_kind)
        except StorageError as e:
            logger.warning(f"Insight cache unavailable for user {user_id}, treating as miss: {e}")
            return None

        if entry is None:
            logger.info(f"Generating new insights for user {user_id} (cache missing)")
            return None
        if entry.retrospective_count != current_count:
            logger.info(
                f"Generating new insights for user {user_id} "
                f"(cache outdated: {entry.retrospective_count} != {current_count})"
            )
            return None

        try:
            snapshot = InsightSnapshot.model_validate(entry.data)
        except ValueError as e:
            logger.warning(f"Cached insights for user {user_id} are unreadable, recomputing: {e}")
            return None

        logger.info(f"Returning cached insights for user {user_id}")
        return InsightsResponse(**snapshot.model_dump(), from_cache=True, cached_at=entry.updated_at)

    async def _write_cache(self, db: AsyncSession, user_id: str, snapshot: InsightSnapshot, count: int) -> None:
        try:
            await self.cache_repo.put(db, user_id, self.insight_kind, snapshot.model_dump(mode="json"), count)
            logger.info(f"Cached insights for user {user_id} at count {count}")
        except CacheWriteError as e:
            logger.warning(f"Could not cache insights for user {user_id}: {e}")

    def _not_enough_data(self, current_count: int) -> NotEnoughDataResponse:
        remaining = self.required_count - current_count
        noun = "retrospective" if remaining == 1 else "retrospectives"
        return NotEnoughDataResponse(
            current_count=current_count,
            required_count=self.required_count,
            remaining=remaining,
            message=f"Complete {remaining} more {noun} to unlock AI insights",
        )

    @staticmethod
    def _enter(user_id: str, stage: InsightsStage) -> None:
        logger.debug(f"[insights] user {user_id}: {stage.value}")
