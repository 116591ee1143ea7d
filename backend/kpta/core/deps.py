from functools import lru_cache

from kpta.agents.client import AnalysisClient
from kpta.services.insights_service import InsightsService
from kpta.services.coaching_service import CoachingService


@lru_cache(maxsize=1)
def get_analysis_client() -> AnalysisClient:
    """Process-wide analysis client (agents are built lazily on first call)"""
    return AnalysisClient()


def get_insights_service() -> InsightsService:
    return InsightsService(analysis_client=get_analysis_client())


def get_coaching_service() -> CoachingService:
    return CoachingService(analysis_client=get_analysis_client())
