from pydantic import AliasChoices, BaseModel, Field, ConfigDict, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Literal, Optional
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class AnalysisKind(str, Enum):
    PATTERNS = "patterns"
    SENTIMENT = "sentiment"
    ACTIONS = "actions"
    SUMMARY = "summary"
    TRIES = "tries"


class ResultSource(str, Enum):
    MODEL = "model"
    FALLBACK = "fallback"


TrendDirection = Literal["improving", "stable", "declining"]
ThemeCategory = Literal["strength", "growth"]

# Model prompts ask for keep/problem/try; snapshots only distinguish strengths from growth areas
_CATEGORY_MAP = {
    "keep": "strength",
    "strength": "strength",
    "problem": "growth",
    "try": "growth",
    "growth": "growth",
}


@dataclass
class RetrospectiveItems:
    """A completed retrospective joined with its category item texts"""
    id: str
    title: Optional[str]
    created_at: datetime
    keeps: List[str] = field(default_factory=list)
    problems: List[str] = field(default_factory=list)
    tries: List[str] = field(default_factory=list)

    def for_sentiment(self) -> "SentimentInput":
        return SentimentInput(created_at=self.created_at, keeps=list(self.keeps), problems=list(self.problems))


@dataclass
class SentimentInput:
    """The slice of a retrospective the sentiment analysis is allowed to see"""
    created_at: datetime
    keeps: List[str] = field(default_factory=list)
    problems: List[str] = field(default_factory=list)


@dataclass
class ActionRequestInput:
    try_text: str
    problems: List[str] = field(default_factory=list)


@dataclass
class TryRequestInput:
    """One retrospective's problems and keeps, plus problems from recent earlier ones"""
    problems: List[str]
    keeps: List[str] = field(default_factory=list)
    past_problems: List[List[str]] = field(default_factory=list)


class ModelOutput(BaseModel):
    """Base for structures parsed out of model text (camelCase or snake_case keys)"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class RecurringTheme(ModelOutput):
    theme: str = Field(..., min_length=1)
    frequency: int = 0
    category: ThemeCategory = "growth"
    examples: List[str] = Field(default_factory=list)

    @field_validator("category", mode="before")
    @classmethod
    def map_category(cls, value):
        if isinstance(value, str):
            return _CATEGORY_MAP.get(value.strip().lower(), "growth")
        return "growth"


class Trend(ModelOutput):
    description: str
    direction: TrendDirection = "stable"

    @field_validator("direction", mode="before")
    @classmethod
    def normalize_direction(cls, value):
        return normalize_trend(value)


class PatternAnalysis(ModelOutput):
    recurring_themes: List[RecurringTheme] = Field(default_factory=list)
    trends: List[Trend] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class SentimentAnalysis(ModelOutput):
    overall_sentiment: str = ""
    sentiment_trend: TrendDirection = "stable"
    wellbeing_score: int = 50
    insights: List[str] = Field(default_factory=list)

    @field_validator("sentiment_trend", mode="before")
    @classmethod
    def normalize_sentiment_trend(cls, value):
        return normalize_trend(value)

    @field_validator("wellbeing_score", mode="before")
    @classmethod
    def clamp_score(cls, value):
        if value is None:
            return 50
        score = _to_int(value, "wellbeing score")
        return max(0, min(100, score))


class ActionSuggestion(ModelOutput):
    text: str = Field(..., min_length=1)
    suggested_deadline_days: int = 7
    reasoning: Optional[str] = None

    @field_validator("suggested_deadline_days", mode="before")
    @classmethod
    def clamp_deadline(cls, value):
        if value is None:
            return 7
        days = _to_int(value, "deadline")
        return max(1, min(30, days))


class TrySuggestion(ModelOutput):
    text: str = Field(..., min_length=1)
    rationale: Optional[str] = Field(None, validation_alias=AliasChoices("rationale", "reasoning"))
    # Zero-based positions in the request's problem list
    related_problems: List[int] = Field(default_factory=list)

    @field_validator("related_problems", mode="before")
    @classmethod
    def keep_valid_indexes(cls, value):
        if not isinstance(value, list):
            return []
        return [v for v in value if isinstance(v, int) and not isinstance(v, bool) and v >= 0]


class RetrospectiveSummary(ModelOutput):
    summary: str = ""
    key_insight: str = ""
    suggestions: List[str] = Field(default_factory=list)
    overall_sentiment: Literal["positive", "neutral", "negative", "mixed"] = "neutral"

    @field_validator("overall_sentiment", mode="before")
    @classmethod
    def normalize_sentiment(cls, value):
        if isinstance(value, str) and value.strip().lower() in ("positive", "neutral", "negative", "mixed"):
            return value.strip().lower()
        return "neutral"


def _to_int(value, label: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{label} must be a number")
    try:
        return int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        raise ValueError(f"{label} must be a number, got {value!r}")


def normalize_trend(value) -> str:
    if isinstance(value, str) and value.strip().lower() in ("improving", "stable", "declining"):
        return value.strip().lower()
    return "stable"
