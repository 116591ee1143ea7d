"""
Analysis client: sends one prompt to the external model and returns its raw text.

No retries happen here. Any failure, including a timeout, surfaces as
AnalysisError tagged with the kind that failed.
"""
import asyncio
import logging
import time
from typing import Any, List, Optional, Sequence

from kpta.agents.factory import AgentFactory
from kpta.agents.models import (
    AnalysisKind,
    RetrospectiveItems,
    SentimentInput,
    ActionRequestInput,
    TryRequestInput,
)
from kpta.agents.prompts import (
    build_patterns_prompt,
    build_sentiment_prompt,
    build_actions_prompt,
    build_summary_prompt,
    build_tries_prompt,
)
from kpta.core.config import settings
from kpta.core.exceptions import AnalysisError

logger = logging.getLogger(__name__)

_PROMPT_BUILDERS = {
    AnalysisKind.PATTERNS: build_patterns_prompt,
    AnalysisKind.SENTIMENT: build_sentiment_prompt,
    AnalysisKind.ACTIONS: build_actions_prompt,
    AnalysisKind.SUMMARY: build_summary_prompt,
    AnalysisKind.TRIES: build_tries_prompt,
}


class AnalysisClient:
    def __init__(self, factory: Optional[AgentFactory] = None, timeout: Optional[float] = None):
        self.factory = factory or AgentFactory()
        self.timeout = timeout if timeout is not None else settings.ANALYSIS_TIMEOUT_SECONDS

    async def analyze(self, kind: AnalysisKind, payload: Any) -> str:
        """Run the ``kind`` analysis over ``payload`` and return the model's raw text"""
        start_time = time.monotonic()
        try:
            prompt = _PROMPT_BUILDERS[kind](payload)
            agent = self.factory.get_agent(kind)
            result = await asyncio.wait_for(agent.run(prompt), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise AnalysisError(kind.value, f"timed out after {self.timeout}s", e) from e
        except Exception as e:
            raise AnalysisError(kind.value, str(e) or type(e).__name__, e) from e

        duration_ms = round((time.monotonic() - start_time) * 1000, 2)
        logger.info(f"[{kind.value}] analysis completed in {duration_ms}ms")
        return result.output

    async def analyze_patterns(self, sessions: Sequence[RetrospectiveItems]) -> str:
        return await self.analyze(AnalysisKind.PATTERNS, list(sessions))

    async def analyze_sentiment(self, sessions: Sequence[SentimentInput]) -> str:
        return await self.analyze(AnalysisKind.SENTIMENT, list(sessions))

    async def generate_actions(self, try_text: str, problems: List[str]) -> str:
        return await self.analyze(AnalysisKind.ACTIONS, ActionRequestInput(try_text=try_text, problems=problems))

    async def summarize(self, retro: RetrospectiveItems) -> str:
        return await self.analyze(AnalysisKind.SUMMARY, retro)

    async def suggest_tries(self, request: TryRequestInput) -> str:
        return await self.analyze(AnalysisKind.TRIES, request)
