from sqlalchemy import Column, String, Boolean, Integer, Text, Date, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import IdentifiedModel, TimestampedModel


PERIOD_TYPES = ("weekly", "monthly")
STATUS_DRAFT = "draft"
STATUS_COMPLETED = "completed"


class RetrospectiveDB(TimestampedModel):
    __tablename__ = "retrospectives"

    user_id = Column(String(36), nullable=False)
    title = Column(String(255), nullable=True)
    period_type = Column(String(20), nullable=False, default="weekly")
    period_start_date = Column(Date, nullable=True)
    period_end_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default=STATUS_DRAFT)

    # Relationships
    keeps = relationship("KeepDB", back_populates="retrospective", cascade="all, delete-orphan", passive_deletes=True)
    problems = relationship("ProblemDB", back_populates="retrospective", cascade="all, delete-orphan", passive_deletes=True)
    tries = relationship("TryDB", back_populates="retrospective", cascade="all, delete-orphan", passive_deletes=True)
    actions = relationship("ActionDB", back_populates="retrospective", cascade="all, delete-orphan", passive_deletes=True)

    # Indexes
    __table_args__ = (
        Index("idx_retrospectives_user_status_created", "user_id", "status", "created_at"),
    )


class KeepDB(IdentifiedModel):
    __tablename__ = "keeps"

    retrospective_id = Column(String(36), ForeignKey("retrospectives.id", ondelete="CASCADE"), nullable=False)
    text = Column(Text, nullable=False)
    order_index = Column(Integer, nullable=False, default=0)

    retrospective = relationship("RetrospectiveDB", back_populates="keeps")

    __table_args__ = (
        UniqueConstraint("retrospective_id", "order_index", name="uq_keeps_retro_order"),
    )


class ProblemDB(IdentifiedModel):
    __tablename__ = "problems"

    retrospective_id = Column(String(36), ForeignKey("retrospectives.id", ondelete="CASCADE"), nullable=False)
    text = Column(Text, nullable=False)
    order_index = Column(Integer, nullable=False, default=0)

    retrospective = relationship("RetrospectiveDB", back_populates="problems")

    __table_args__ = (
        UniqueConstraint("retrospective_id", "order_index", name="uq_problems_retro_order"),
    )


class TryDB(IdentifiedModel):
    __tablename__ = "tries"

    retrospective_id = Column(String(36), ForeignKey("retrospectives.id", ondelete="CASCADE"), nullable=False)
    text = Column(Text, nullable=False)
    order_index = Column(Integer, nullable=False, default=0)

    retrospective = relationship("RetrospectiveDB", back_populates="tries")

    __table_args__ = (
        UniqueConstraint("retrospective_id", "order_index", name="uq_tries_retro_order"),
    )


class ActionDB(IdentifiedModel):
    __tablename__ = "actions"

    user_id = Column(String(36), nullable=False)
    retrospective_id = Column(String(36), ForeignKey("retrospectives.id", ondelete="CASCADE"), nullable=False)
    try_id = Column(String(36), ForeignKey("tries.id", ondelete="SET NULL"), nullable=True)
    text = Column(Text, nullable=False)
    is_completed = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(Date, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)

    retrospective = relationship("RetrospectiveDB", back_populates="actions")

    __table_args__ = (
        UniqueConstraint("retrospective_id", "order_index", name="uq_actions_retro_order"),
        Index("idx_actions_user_completed", "user_id", "is_completed"),
    )
