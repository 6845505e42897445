"""
Boundary schemas for the progress engine.

AttemptInput carries the validation the request boundary applies before the
engine runs; the engine itself trusts these ranges. Summary views are what
the read projections return for serialization.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from progress_engine.db.models import Activity


class AttemptInput(BaseModel):
    """One submitted attempt, already resolved to a learner and an activity."""

    model_config = ConfigDict(frozen=True)

    learner_id: str = Field(min_length=1)
    activity_id: str = Field(min_length=1)
    success: bool
    score: float | None = Field(default=None, ge=0, le=100)
    max_score: float | None = Field(default=None, ge=1, le=100)
    accuracy: float | None = Field(default=None, ge=0, le=1)
    time_spent_seconds: float | None = Field(default=None, ge=0)
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class ModuleDescriptor:
    id: str
    slug: str
    title: str


@dataclass(frozen=True)
class StandardDescriptor:
    id: str
    code: str
    competency: str


@dataclass(frozen=True)
class ActivityDescriptor:
    """Catalog facts about the attempted activity."""

    id: str
    title: str
    slug: str
    module: ModuleDescriptor
    curriculum_standard: StandardDescriptor

    @classmethod
    def from_model(cls, activity: Activity) -> ActivityDescriptor:
        return cls(
            id=activity.id,
            title=activity.title,
            slug=activity.slug,
            module=ModuleDescriptor(
                id=activity.module.id,
                slug=activity.module.slug,
                title=activity.module.title,
            ),
            curriculum_standard=StandardDescriptor(
                id=activity.curriculum_standard.id,
                code=activity.curriculum_standard.code,
                competency=activity.curriculum_standard.competency,
            ),
        )


# =============================================================================
# Summary views
# =============================================================================


class LearnerSummary(BaseModel):
    id: str
    display_name: str | None
    xp: int
    level: int
    next_level_at: int
    xp_to_next: int
    xp_progress_percent: int
    current_streak: int
    longest_streak: int


class ModuleSummary(BaseModel):
    id: str
    title: str
    slug: str
    completion: int
    status: str
    mastery: int
    current_streak: int
    best_streak: int
    average_accuracy: float
    average_time_seconds: int
    last_activity_at: str | None
    curriculum_code: str | None


class CompetencySummary(BaseModel):
    id: str
    code: str
    competency: str
    mastery: int
    accuracy: float
    current_streak: int
    best_streak: int
    average_time_seconds: int
    attempts_count: int
    last_interaction_at: str | None


class RewardSummary(BaseModel):
    id: str
    code: str
    title: str
    category: str
    rarity: str
    xp_awarded: int
    level_achieved: int | None
    unlocked_at: str
    metadata: dict[str, Any] | None


class UpcomingGoal(BaseModel):
    id: str
    title: str
    description: str
    progress: float
    target: float
    type: Literal["module", "competency", "streak"]


class ProgressSummary(BaseModel):
    learner: LearnerSummary
    modules: list[ModuleSummary]
    competencies: list[CompetencySummary]
    rewards: list[RewardSummary]
    upcoming_goals: list[UpcomingGoal]


class DigestLearner(BaseModel):
    id: str
    display_name: str | None
    level: int
    xp: int
    xp_to_next: int
    mastery_average: int
    current_streak: int
    longest_streak: int
    completed_modules: int
    reward_count: int


class Strength(BaseModel):
    code: str
    competency: str
    mastery: int


class FocusArea(BaseModel):
    module_id: str
    title: str
    mastery: int
    recommendation: str


class RecentReward(BaseModel):
    id: str
    title: str
    category: str
    rarity: str
    unlocked_at: str


class EducatorDigest(BaseModel):
    learner: DigestLearner
    strengths: list[Strength]
    focus_areas: list[FocusArea]
    recent_rewards: list[RecentReward]
    upcoming_goals: list[UpcomingGoal]
    recommendations: list[str]
