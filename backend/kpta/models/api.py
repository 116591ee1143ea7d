from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import datetime, date

from kpta.agents.models import ThemeCategory, TrendDirection
from kpta.core.config import settings


class ThemeEntry(BaseModel):
    theme: str
    category: ThemeCategory


class InsightSnapshot(BaseModel):
    wellbeing_score: int = Field(..., ge=0, le=100)
    wellbeing_trend: TrendDirection
    top_themes: List[ThemeEntry] = Field(default_factory=list)
    key_recommendation: str


class InsightsRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=36)
    limit: Optional[int] = Field(None, ge=1, le=settings.INSIGHTS_MAX_LIMIT)


class InsightsResponse(InsightSnapshot):
    status: Literal["ready"] = "ready"
    from_cache: bool = False
    cached_at: Optional[datetime] = None

    def snapshot(self) -> InsightSnapshot:
        return InsightSnapshot(**self.model_dump(include=set(InsightSnapshot.model_fields)))


class NotEnoughDataResponse(BaseModel):
    status: Literal["not_enough_data"] = "not_enough_data"
    current_count: int
    required_count: int
    remaining: int
    message: str


class SuggestActionsRequest(BaseModel):
    try_text: str = Field(..., min_length=1, max_length=2000)
    problems: List[str] = Field(default_factory=list)


class SuggestedAction(BaseModel):
    text: str
    suggested_deadline_days: int = Field(..., ge=1)
    reasoning: Optional[str] = None


class SuggestActionsResponse(BaseModel):
    actions: List[SuggestedAction]


class AcceptActionsRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=36)
    retrospective_id: str
    try_id: Optional[str] = None
    actions: List[SuggestedAction] = Field(..., min_length=1)


class ActionResponse(BaseModel):
    id: str
    text: str
    is_completed: bool
    due_date: Optional[date]
    order_index: int
    retrospective_id: str
    try_id: Optional[str]


class RetrospectiveStatusResponse(BaseModel):
    id: str
    status: str
    completed_count: int


class RetrospectiveSummaryResponse(BaseModel):
    retrospective_id: str
    summary: str
    key_insight: str
    suggestions: List[str]
    overall_sentiment: str


class TrySuggestionResponse(BaseModel):
    text: str
    rationale: Optional[str] = None
    related_problems: List[int] = Field(default_factory=list)


class TrySuggestionsResponse(BaseModel):
    retrospective_id: str
    suggestions: List[TrySuggestionResponse]
