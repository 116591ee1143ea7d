from sqlalchemy import Column, String, Integer, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB

from .base import TimestampedModel


# JSONB on PostgreSQL, plain JSON elsewhere
JSONField = JSON().with_variant(JSONB(), "postgresql")


class InsightCacheDB(TimestampedModel):
    __tablename__ = "ai_insights_cache"

    user_id = Column(String(36), nullable=False)
    insight_type = Column(String(50), nullable=False)
    data = Column(JSONField, nullable=False)
    # Completed-retrospective count the payload was computed from
    retrospective_count = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "insight_type", name="uq_insights_cache_user_type"),
    )
