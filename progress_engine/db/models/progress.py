"""
Progress Engine Models.

SQLAlchemy models for the state the engine owns:
- Learner: per-learner game state (XP, level, platform-wide streak)
- Attempt: immutable attempt events
- ModuleProgress / CompetencyProgress: aggregates fully recomputed from history
- Reward: immutable unlock records, unique per (learner, code)

Attempt and Reward keep their JSON payload in a column named "metadata";
the Python attribute is renamed because Declarative reserves `metadata`.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, isoformat, new_id
from .catalog import Activity, ContentModule, CurriculumStandard


class Learner(Base):
    """
    Learner game state (one row per learner).

    xp only grows; level and next_level_at are derived from xp by the
    leveling function and stored for cheap reads.
    """

    __tablename__ = "learners"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    display_name: Mapped[str | None] = mapped_column(Text)

    xp: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    next_level_at: Mapped[int] = mapped_column(Integer, default=1000, nullable=False)
    current_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<Learner {self.id} xp={self.xp} level={self.level}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "xp": self.xp,
            "level": self.level,
            "next_level_at": self.next_level_at,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
        }


class Attempt(Base):
    """One learner action on one activity. Never updated or deleted."""

    __tablename__ = "attempts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    learner_id: Mapped[str] = mapped_column(ForeignKey("learners.id"), nullable=False)
    activity_id: Mapped[str] = mapped_column(ForeignKey("activities.id"), nullable=False)

    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    score: Mapped[float | None] = mapped_column(Float)  # 0-100
    max_score: Mapped[float | None] = mapped_column(Float)
    accuracy: Mapped[float | None] = mapped_column(Float)  # 0-1
    time_spent_seconds: Mapped[float | None] = mapped_column(Float)
    attempt_metadata: Mapped[dict | None] = mapped_column("metadata", JSON)

    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    activity: Mapped[Activity] = relationship()

    __table_args__ = (
        Index("idx_attempts_learner_submitted", "learner_id", "submitted_at"),
    )

    def __repr__(self) -> str:
        return f"<Attempt {self.id} learner={self.learner_id} success={self.success}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "learner_id": self.learner_id,
            "activity_id": self.activity_id,
            "success": self.success,
            "score": self.score,
            "max_score": self.max_score,
            "accuracy": self.accuracy,
            "time_spent_seconds": self.time_spent_seconds,
            "metadata": self.attempt_metadata,
            "submitted_at": isoformat(self.submitted_at),
        }


class ModuleProgress(Base):
    """Per (learner, module) aggregate. Overwritten from full history on every attempt."""

    __tablename__ = "module_progress"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    learner_id: Mapped[str] = mapped_column(ForeignKey("learners.id"), nullable=False)
    module_id: Mapped[str] = mapped_column(ForeignKey("content_modules.id"), nullable=False)

    completion: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # 0-100
    status: Mapped[str] = mapped_column(String(16), default="NOT_STARTED", nullable=False)
    mastery: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # 0-100
    current_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    best_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    average_accuracy: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    average_time_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_activity_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    module: Mapped[ContentModule] = relationship()

    __table_args__ = (
        UniqueConstraint("learner_id", "module_id", name="uq_learner_module"),
    )

    def __repr__(self) -> str:
        return f"<ModuleProgress learner={self.learner_id} module={self.module_id} completion={self.completion}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "learner_id": self.learner_id,
            "module_id": self.module_id,
            "completion": self.completion,
            "status": self.status,
            "mastery": self.mastery,
            "current_streak": self.current_streak,
            "best_streak": self.best_streak,
            "average_accuracy": self.average_accuracy,
            "average_time_seconds": self.average_time_seconds,
            "total_attempts": self.total_attempts,
            "last_activity_at": isoformat(self.last_activity_at),
        }


class CompetencyProgress(Base):
    """Per (learner, curriculum standard) aggregate across every tagged activity."""

    __tablename__ = "competency_progress"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    learner_id: Mapped[str] = mapped_column(ForeignKey("learners.id"), nullable=False)
    curriculum_standard_id: Mapped[str] = mapped_column(
        ForeignKey("curriculum_standards.id"), nullable=False
    )

    mastery: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    best_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    accuracy: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    average_time_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    attempts_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_interaction_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    curriculum_standard: Mapped[CurriculumStandard] = relationship()

    __table_args__ = (
        UniqueConstraint("learner_id", "curriculum_standard_id", name="uq_learner_competency"),
    )

    def __repr__(self) -> str:
        return f"<CompetencyProgress learner={self.learner_id} standard={self.curriculum_standard_id} mastery={self.mastery}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "learner_id": self.learner_id,
            "curriculum_standard_id": self.curriculum_standard_id,
            "mastery": self.mastery,
            "current_streak": self.current_streak,
            "best_streak": self.best_streak,
            "accuracy": self.accuracy,
            "average_time_seconds": self.average_time_seconds,
            "attempts_count": self.attempts_count,
            "last_interaction_at": isoformat(self.last_interaction_at),
        }


class Reward(Base):
    """
    Immutable unlock record.

    `code` is the idempotency key (e.g. "module:<id>:completion", "level:3");
    the (learner_id, code) constraint guarantees a reward is minted once.
    """

    __tablename__ = "rewards"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    learner_id: Mapped[str] = mapped_column(ForeignKey("learners.id"), nullable=False)
    code: Mapped[str] = mapped_column(String(255), nullable=False)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    criteria: Mapped[str | None] = mapped_column(Text)
    icon: Mapped[str | None] = mapped_column(String(64))
    category: Mapped[str] = mapped_column(String(16), nullable=False)  # BADGE, COLLECTIBLE, LEVEL, XP
    rarity: Mapped[str] = mapped_column(String(16), nullable=False)  # RARE, EPIC, LEGENDARY
    xp_awarded: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    level_achieved: Mapped[int | None] = mapped_column(Integer)
    details: Mapped[dict | None] = mapped_column("metadata", JSON)

    unlocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("learner_id", "code", name="uq_learner_reward_code"),
        Index("idx_rewards_learner_unlocked", "learner_id", "unlocked_at"),
    )

    def __repr__(self) -> str:
        return f"<Reward {self.code} learner={self.learner_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "title": self.title,
            "description": self.description,
            "criteria": self.criteria,
            "icon": self.icon,
            "category": self.category,
            "rarity": self.rarity,
            "xp_awarded": self.xp_awarded,
            "level_achieved": self.level_achieved,
            "metadata": self.details,
            "unlocked_at": isoformat(self.unlocked_at),
        }
