"""Tests for the insight orchestration with the stores mocked out"""
import asyncio
import pytest
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from kpta.agents.models import AnalysisKind, RetrospectiveItems, PatternAnalysis, SentimentAnalysis
from kpta.core.exceptions import AnalysisError, CacheWriteError, StorageError
from kpta.models.api import InsightsResponse, NotEnoughDataResponse, InsightSnapshot
from kpta.services.insights_service import InsightsService


SESSIONS = [
    RetrospectiveItems(id="r1", title="Week 1", created_at=datetime(2024, 1, 1),
                       keeps=["Morning runs"], problems=["Late nights"], tries=["Earlier bedtime"]),
    RetrospectiveItems(id="r2", title="Week 2", created_at=datetime(2024, 1, 8),
                       keeps=["Deep work"], problems=["Meetings", "Inbox"], tries=[]),
]


def _cache_entry(snapshot: InsightSnapshot, count: int):
    return SimpleNamespace(
        data=snapshot.model_dump(mode="json"),
        retrospective_count=count,
        updated_at=datetime(2024, 2, 1, 12, 0),
    )


@pytest.fixture
def retro_repo():
    repo = MagicMock()
    repo.count_completed = AsyncMock(return_value=2)
    repo.get_completed_with_items = AsyncMock(return_value=SESSIONS)
    return repo


@pytest.fixture
def cache_repo():
    repo = MagicMock()
    repo.get = AsyncMock(return_value=None)
    repo.put = AsyncMock(return_value=None)
    return repo


@pytest.fixture
def build_service(retro_repo, cache_repo):
    def _build(client, **kwargs):
        return InsightsService(analysis_client=client, retro_repo=retro_repo, cache_repo=cache_repo, **kwargs)
    return _build


class TestPrecondition:
    """Tests for the minimum-data gate"""

    @pytest.mark.asyncio
    async def test_zero_sessions_is_not_enough_data(self, build_service, retro_repo, cache_repo, scripted_client):
        retro_repo.count_completed.return_value = 0
        service = build_service(scripted_client, required_count=1)

        result = await service.get_insights(MagicMock(), "user-1")

        assert isinstance(result, NotEnoughDataResponse)
        assert result.current_count == 0
        assert result.required_count == 1
        assert result.remaining == 1
        assert result.message == "Complete 1 more retrospective to unlock AI insights"
        assert scripted_client.calls == []
        cache_repo.get.assert_not_awaited()
        cache_repo.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_plural_message_for_higher_threshold(self, build_service, retro_repo, scripted_client):
        retro_repo.count_completed.return_value = 1
        service = build_service(scripted_client, required_count=3)

        result = await service.get_insights(MagicMock(), "user-1")

        assert result.remaining == 2
        assert result.message == "Complete 2 more retrospectives to unlock AI insights"

    @pytest.mark.asyncio
    async def test_exactly_required_count_proceeds(self, build_service, retro_repo, scripted_client):
        retro_repo.count_completed.return_value = 1
        service = build_service(scripted_client, required_count=1)

        result = await service.get_insights(MagicMock(), "user-1")

        assert isinstance(result, InsightsResponse)
        assert len(scripted_client.calls) == 2

    @pytest.mark.asyncio
    async def test_count_failure_propagates(self, build_service, retro_repo, scripted_client):
        retro_repo.count_completed.side_effect = StorageError("db down")
        service = build_service(scripted_client)

        with pytest.raises(StorageError):
            await service.get_insights(MagicMock(), "user-1")
        assert scripted_client.calls == []


class TestMerge:
    """Tests for combining the two analyses"""

    @pytest.mark.asyncio
    async def test_snapshot_from_both_analyses(self, build_service, make_client, cache_repo):
        client = make_client(responses={
            AnalysisKind.PATTERNS: '{"recurringThemes": [{"theme": "T1", "category": "strength"}], "recommendations": ["R1", "R2"]}',
            AnalysisKind.SENTIMENT: '{"wellbeingScore": 82, "sentimentTrend": "improving"}',
        })
        service = build_service(client)

        result = await service.get_insights(MagicMock(), "user-1")

        assert result.snapshot() == InsightSnapshot(
            wellbeing_score=82,
            wellbeing_trend="improving",
            top_themes=[{"theme": "T1", "category": "strength"}],
            key_recommendation="R1",
        )
        assert result.from_cache is False
        assert result.cached_at is None
        cache_repo.put.assert_awaited_once()
        _, user_id, insight_type, data, count = cache_repo.put.await_args.args
        assert (user_id, insight_type, count) == ("user-1", "combined", 2)
        assert data == result.snapshot().model_dump(mode="json")

    @pytest.mark.asyncio
    async def test_themes_truncated_in_model_order(self, build_service, scripted_client):
        service = build_service(scripted_client, top_themes=3)

        result = await service.get_insights(MagicMock(), "user-1")

        assert [(t.theme, t.category) for t in result.top_themes] == [
            ("Morning focus blocks", "strength"),
            ("Meeting overload", "growth"),
            ("Time boxing", "growth"),
        ]
        assert result.key_recommendation == "Protect two mornings a week for deep work"
        assert result.wellbeing_score == 74

    def test_default_recommendation_when_none_given(self, scripted_client):
        service = InsightsService(analysis_client=scripted_client, retro_repo=MagicMock(), cache_repo=MagicMock())

        snapshot = service.merge(PatternAnalysis(), SentimentAnalysis(wellbeing_score=60))

        assert snapshot.top_themes == []
        assert snapshot.key_recommendation == "Keep reflecting regularly"

    @pytest.mark.asyncio
    async def test_sentiment_sees_only_keeps_and_problems(self, build_service, scripted_client):
        service = build_service(scripted_client)

        await service.get_insights(MagicMock(), "user-1")

        [sentiment_payload] = scripted_client.calls_for(AnalysisKind.SENTIMENT)
        assert [(s.keeps, s.problems) for s in sentiment_payload] == [
            (["Morning runs"], ["Late nights"]),
            (["Deep work"], ["Meetings", "Inbox"]),
        ]
        assert not any(hasattr(s, "tries") for s in sentiment_payload)
        [patterns_payload] = scripted_client.calls_for(AnalysisKind.PATTERNS)
        assert [s.id for s in patterns_payload] == ["r1", "r2"]


class TestDegradation:
    """Tests for failures that must not fail the request"""

    @pytest.mark.asyncio
    async def test_sentiment_failure_uses_neutral_fallback(self, build_service, make_client):
        client = make_client(errors={AnalysisKind.SENTIMENT: AnalysisError("sentiment", "timed out")})
        client.responses[AnalysisKind.PATTERNS] = (
            '{"recurringThemes": [{"theme": "T1", "category": "keep"}], "recommendations": ["R1"]}'
        )
        service = build_service(client)

        result = await service.get_insights(MagicMock(), "user-1")

        assert result.wellbeing_score == 50
        assert result.wellbeing_trend == "stable"
        assert [t.theme for t in result.top_themes] == ["T1"]
        assert result.key_recommendation == "R1"

    @pytest.mark.asyncio
    async def test_both_failures_still_produce_a_snapshot(self, build_service, make_client, cache_repo):
        client = make_client(responses={})
        service = build_service(client)

        result = await service.get_insights(MagicMock(), "user-1")

        assert isinstance(result, InsightsResponse)
        assert result.wellbeing_score == 50
        assert [t.theme for t in result.top_themes] == ["3 problems vs 2 keeps", "2 completed retrospectives"]
        assert result.key_recommendation == "Focus on: Meetings"
        cache_repo.put.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_malformed_output_uses_fallback(self, build_service, make_client):
        client = make_client(responses={
            AnalysisKind.PATTERNS: "Sorry, I cannot help with that.",
            AnalysisKind.SENTIMENT: '{"wellbeingScore": 91}',
        })
        service = build_service(client)

        result = await service.get_insights(MagicMock(), "user-1")

        assert result.wellbeing_score == 91
        assert result.top_themes[0].category == "growth"

    @pytest.mark.asyncio
    async def test_deeply_nested_output_uses_fallback(self, build_service, make_client):
        client = make_client(responses={
            AnalysisKind.PATTERNS: '{"a": ' * 100000 + "1" + "}" * 100000,
            AnalysisKind.SENTIMENT: "[" * 100000 + "]" * 100000,
        })
        service = build_service(client)

        result = await service.get_insights(MagicMock(), "user-1")

        assert result.wellbeing_score == 50
        assert result.wellbeing_trend == "stable"
        assert result.top_themes

    @pytest.mark.asyncio
    async def test_cache_read_failure_is_a_miss(self, build_service, cache_repo, scripted_client):
        cache_repo.get.side_effect = StorageError("cache table missing")
        service = build_service(scripted_client)

        result = await service.get_insights(MagicMock(), "user-1")

        assert result.from_cache is False
        assert len(scripted_client.calls) == 2

    @pytest.mark.asyncio
    async def test_cache_write_failure_is_swallowed(self, build_service, cache_repo, scripted_client):
        cache_repo.put.side_effect = CacheWriteError("disk full")
        service = build_service(scripted_client)

        result = await service.get_insights(MagicMock(), "user-1")

        assert isinstance(result, InsightsResponse)
        assert result.wellbeing_score == 74

    @pytest.mark.asyncio
    async def test_fetch_failure_propagates_without_analysis(self, build_service, retro_repo, cache_repo, scripted_client):
        retro_repo.get_completed_with_items.side_effect = StorageError("connection reset")
        service = build_service(scripted_client)

        with pytest.raises(StorageError):
            await service.get_insights(MagicMock(), "user-1")
        assert scripted_client.calls == []
        cache_repo.put.assert_not_awaited()


class TestCacheValidity:
    """Tests for serving and invalidating the cached snapshot"""

    SNAPSHOT = InsightSnapshot(
        wellbeing_score=66,
        wellbeing_trend="declining",
        top_themes=[{"theme": "Sleep", "category": "growth"}],
        key_recommendation="Go to bed earlier",
    )

    @pytest.mark.asyncio
    async def test_matching_count_is_served_from_cache(self, build_service, cache_repo, retro_repo, scripted_client):
        cache_repo.get.return_value = _cache_entry(self.SNAPSHOT, 2)
        service = build_service(scripted_client)

        result = await service.get_insights(MagicMock(), "user-1")

        assert result.from_cache is True
        assert result.cached_at == datetime(2024, 2, 1, 12, 0)
        assert result.snapshot() == self.SNAPSHOT
        assert scripted_client.calls == []
        retro_repo.get_completed_with_items.assert_not_awaited()
        cache_repo.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_count_mismatch_recomputes(self, build_service, cache_repo, scripted_client):
        cache_repo.get.return_value = _cache_entry(self.SNAPSHOT, 1)
        service = build_service(scripted_client)

        result = await service.get_insights(MagicMock(), "user-1")

        assert result.from_cache is False
        assert result.wellbeing_score == 74
        assert cache_repo.put.await_args.args[4] == 2

    @pytest.mark.asyncio
    async def test_higher_cached_count_also_recomputes(self, build_service, cache_repo, scripted_client):
        # A deletion lowers the count below the cached value
        cache_repo.get.return_value = _cache_entry(self.SNAPSHOT, 5)
        service = build_service(scripted_client)

        result = await service.get_insights(MagicMock(), "user-1")

        assert result.from_cache is False

    @pytest.mark.asyncio
    async def test_unreadable_cached_payload_recomputes(self, build_service, cache_repo, scripted_client):
        entry = _cache_entry(self.SNAPSHOT, 2)
        entry.data = {"wellbeing_score": "not a number"}
        cache_repo.get.return_value = entry
        service = build_service(scripted_client)

        result = await service.get_insights(MagicMock(), "user-1")

        assert result.from_cache is False
        assert len(scripted_client.calls) == 2


class TestConcurrency:
    """The two analyses are issued together"""

    @pytest.mark.asyncio
    async def test_analyses_overlap(self, build_service, scripted_client):
        started = []
        both_started = asyncio.Event()
        original = scripted_client.analyze

        async def barrier_analyze(kind, payload):
            started.append(kind)
            if len(started) == 2:
                both_started.set()
            # Sequential execution would never see the second call start
            await asyncio.wait_for(both_started.wait(), timeout=2)
            return await original(kind, payload)

        scripted_client.analyze = barrier_analyze
        service = build_service(scripted_client)

        result = await service.get_insights(MagicMock(), "user-1")

        assert sorted(k.value for k in started) == ["patterns", "sentiment"]
        assert result.wellbeing_score == 74

    @pytest.mark.asyncio
    async def test_limit_is_clamped(self, build_service, retro_repo, scripted_client):
        service = build_service(scripted_client)

        await service.get_insights(MagicMock(), "user-1", limit=500)

        assert retro_repo.get_completed_with_items.await_args.args[2] == 50
