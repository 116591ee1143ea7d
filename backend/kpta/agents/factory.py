from typing import Dict, Optional
import logging
import os

from pydantic_ai import Agent
from pydantic_ai.models import Model
from pydantic_ai.models.anthropic import AnthropicModel

from kpta.agents.models import AnalysisKind
from kpta.core.config import settings, get_anthropic_api_key

logger = logging.getLogger(__name__)


class AgentFactory:
    """Builds one plain-text pydantic-ai agent per analysis kind"""

    def __init__(self, model: Optional[Model] = None):
        self._model = model
        self._agents: Dict[AnalysisKind, Agent] = {}

    def get_agent(self, kind: AnalysisKind) -> Agent:
        """Get or create the agent for an analysis kind"""
        if kind not in self._agents:
            self._agents[kind] = Agent(
                model=self._get_model(),
                system_prompt=self._get_system_prompt(kind),
            )
            logger.debug(f"Created {kind.value} analysis agent")
        return self._agents[kind]

    def _get_model(self) -> Model:
        if self._model is None:
            api_key = get_anthropic_api_key()
            if api_key:
                os.environ["ANTHROPIC_API_KEY"] = api_key
            else:
                logger.error("No Anthropic API key found")
            self._model = AnthropicModel(settings.ANTHROPIC_ANALYSIS_MODEL)
        return self._model

    @staticmethod
    def _get_system_prompt(kind: AnalysisKind) -> str:
        if kind == AnalysisKind.PATTERNS:
            return ("You are an AI coach analyzing personal growth patterns over time "
                    "from KPTA (Keep, Problem, Try, Action) retrospectives. "
                    "Respond with JSON only.")
        elif kind == AnalysisKind.SENTIMENT:
            return ("You analyze the emotional tone and well-being expressed in personal "
                    "retrospectives. Respond with JSON only.")
        elif kind == AnalysisKind.ACTIONS:
            return ("You are a professional productivity coach specializing in breaking down "
                    "goals into concrete, achievable actions. Respond with a JSON array only.")
        elif kind == AnalysisKind.TRIES:
            return ("You are a personal growth coach helping someone with their self-retrospective "
                    "using the KPTA framework. Respond with a JSON array only.")
        else:
            return ("You give simple, clear feedback on a single weekly reflection. "
                    "Respond with JSON only.")
