"""Shared fixtures: file-backed SQLite databases and a scripted analysis client"""
import asyncio
import pytest
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kpta.agents.client import AnalysisClient
from kpta.agents.models import AnalysisKind
from kpta.core.exceptions import AnalysisError
from kpta.database import create_engine_for_url, create_tables
from kpta.models.retrospective import RetrospectiveDB, KeepDB, ProblemDB, TryDB


BASE_TIME = datetime(2024, 3, 4, 9, 0, 0)

PATTERNS_JSON = """{
  "recurringThemes": [
    {"theme": "Morning focus blocks", "frequency": 3, "category": "keep", "examples": ["Deep work before 10am"]},
    {"theme": "Meeting overload", "frequency": 2, "category": "problem", "examples": ["Too many syncs"]},
    {"theme": "Time boxing", "frequency": 2, "category": "try", "examples": ["Pomodoro"]},
    {"theme": "Exercise", "frequency": 1, "category": "keep", "examples": ["Ran twice"]}
  ],
  "trends": [{"description": "Focus time is growing", "direction": "improving"}],
  "recommendations": ["Protect two mornings a week for deep work", "Decline optional meetings"]
}"""

SENTIMENT_JSON = """```json
{"overallSentiment": "Mostly positive", "sentimentTrend": "improving", "wellbeingScore": 74, "insights": ["Energy rises after exercise"]}
```"""


class ScriptedAnalysisClient(AnalysisClient):
    """AnalysisClient whose model returns canned text or raises per analysis kind"""

    def __init__(
        self,
        responses: Optional[Dict[AnalysisKind, str]] = None,
        errors: Optional[Dict[AnalysisKind, Exception]] = None,
        delay: float = 0,
    ):
        super().__init__()
        self.responses = responses if responses is not None else {
            AnalysisKind.PATTERNS: PATTERNS_JSON,
            AnalysisKind.SENTIMENT: SENTIMENT_JSON,
        }
        self.errors = errors or {}
        self.delay = delay
        self.calls: List[tuple] = []

    def calls_for(self, kind: AnalysisKind) -> List:
        return [payload for called_kind, payload in self.calls if called_kind == kind]

    async def analyze(self, kind: AnalysisKind, payload) -> str:
        self.calls.append((kind, payload))
        if self.delay:
            await asyncio.sleep(self.delay)
        if kind in self.errors:
            raise self.errors[kind]
        if kind not in self.responses:
            raise AnalysisError(kind.value, "no scripted response")
        return self.responses[kind]


@pytest.fixture
def scripted_client():
    return ScriptedAnalysisClient()


@pytest.fixture
def make_client():
    """Build a ScriptedAnalysisClient with custom responses/errors"""
    return ScriptedAnalysisClient


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'kpta_test.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def add_retrospective(session_maker):
    """Insert a retrospective with its items; created_at advances one week per call"""
    counter = {"n": 0}

    async def _add(
        user_id: str = "user-1",
        keeps: Sequence[str] = (),
        problems: Sequence[str] = (),
        tries: Sequence[str] = (),
        status: str = "completed",
        title: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> RetrospectiveDB:
        created_at = created_at or BASE_TIME + timedelta(weeks=counter["n"])
        counter["n"] += 1
        async with session_maker() as session:
            retro = RetrospectiveDB(
                user_id=user_id,
                title=title,
                period_type="weekly",
                status=status,
                created_at=created_at,
                updated_at=created_at,
            )
            session.add(retro)
            await session.flush()
            for model, texts in ((KeepDB, keeps), (ProblemDB, problems), (TryDB, tries)):
                # Gapped ordinals: positions need only be unique, not contiguous
                for position, text in enumerate(texts):
                    session.add(model(retrospective_id=retro.id, text=text, order_index=position * 10))
            await session.commit()
            return retro

    return _add
