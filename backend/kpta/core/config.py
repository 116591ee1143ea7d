from pydantic_settings import BaseSettings
from typing import List
import os
import logging
import boto3
from functools import lru_cache

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_anthropic_api_key() -> str:
    """Get Anthropic API key from environment or SSM Parameter Store (cached)"""
    api_key = os.getenv("ANTHROPIC_API_KEY")
    if api_key:
        return api_key

    # Lambda deployments keep the key in SSM
    param_name = os.getenv("ANTHROPIC_API_KEY_PARAM")
    if param_name:
        try:
            ssm = boto3.client('ssm', config=boto3.session.Config(
                retries={'max_attempts': 2, 'mode': 'standard'},
                read_timeout=10,
                connect_timeout=5
            ))
            response = ssm.get_parameter(Name=param_name, WithDecryption=True)
            return response['Parameter']['Value']
        except Exception as e:
            logger.warning(f"Failed to load API key from SSM: {e}")
            return ""

    return ""


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./kpta.db"

    # Anthropic
    ANTHROPIC_ANALYSIS_MODEL: str = "claude-sonnet-4-20250514"
    ANALYSIS_TIMEOUT_SECONDS: float = 60.0

    # Insights pipeline
    INSIGHTS_KIND: str = "combined"
    INSIGHTS_REQUIRED_SESSIONS: int = 1
    INSIGHTS_TOP_THEMES: int = 3
    INSIGHTS_DEFAULT_LIMIT: int = 10
    INSIGHTS_MAX_LIMIT: int = 50
    DEFAULT_RECOMMENDATION: str = "Keep reflecting regularly"

    # Action generation
    ACTION_FALLBACK_DEADLINE_DAYS: int = 7
    ACTION_MAX_SUGGESTIONS: int = 5

    # Try suggestions
    TRY_MAX_SUGGESTIONS: int = 5
    TRY_PAST_CONTEXT_SESSIONS: int = 3

    # Debug mode
    DEBUG: bool = False

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Application
    APP_NAME: str = "KPTA Retrospective Insights"
    VERSION: str = "1.0.0"
    APP_ENV: str = "development"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
