"""
Summary Projector.

Read-only projections over persisted aggregates: the learner dashboard
summary, the educator digest and the reward list. Nothing here recomputes
metrics; everything comes from the rows the orchestrator wrote.
"""

from __future__ import annotations

from loguru import logger

from progress_engine.config import get_settings
from progress_engine.core.leveling import next_streak_target, xp_progress_percent
from progress_engine.core.metrics import round_half_up
from progress_engine.core.rewards import MASTERY_BADGE_THRESHOLD
from progress_engine.db.models import CompetencyProgress, Learner, ModuleProgress, Reward
from progress_engine.db.models.base import isoformat
from progress_engine.db.repository import ProgressStore
from progress_engine.exceptions import LearnerNotFoundError
from progress_engine.schemas import (
    CompetencySummary,
    DigestLearner,
    EducatorDigest,
    FocusArea,
    LearnerSummary,
    ModuleSummary,
    ProgressSummary,
    RecentReward,
    RewardSummary,
    Strength,
    UpcomingGoal,
)

MODULE_GOAL_TARGET = 100
FOCUS_MASTERY_CEILING = 70
DIGEST_SLOTS = 3
MOMENTUM_STREAK = 3


def summarize_learner(learner: Learner) -> LearnerSummary:
    return LearnerSummary(
        id=learner.id,
        display_name=learner.display_name,
        xp=learner.xp,
        level=learner.level,
        next_level_at=learner.next_level_at,
        xp_to_next=max(0, learner.next_level_at - learner.xp),
        xp_progress_percent=xp_progress_percent(learner.xp, learner.level, learner.next_level_at),
        current_streak=learner.current_streak,
        longest_streak=learner.longest_streak,
    )


def summarize_module(progress: ModuleProgress) -> ModuleSummary:
    module = progress.module
    standard = module.curriculum_standard
    return ModuleSummary(
        id=progress.module_id,
        title=module.title,
        slug=module.slug,
        completion=progress.completion,
        status=progress.status,
        mastery=progress.mastery,
        current_streak=progress.current_streak,
        best_streak=progress.best_streak,
        average_accuracy=round(progress.average_accuracy, 4),
        average_time_seconds=progress.average_time_seconds,
        last_activity_at=isoformat(progress.last_activity_at),
        curriculum_code=standard.code if standard is not None else None,
    )


def summarize_competency(progress: CompetencyProgress) -> CompetencySummary:
    standard = progress.curriculum_standard
    return CompetencySummary(
        id=standard.id,
        code=standard.code,
        competency=standard.competency,
        mastery=progress.mastery,
        accuracy=round(progress.accuracy, 4),
        current_streak=progress.current_streak,
        best_streak=progress.best_streak,
        average_time_seconds=progress.average_time_seconds,
        attempts_count=progress.attempts_count,
        last_interaction_at=isoformat(progress.last_interaction_at),
    )


def summarize_reward(reward: Reward) -> RewardSummary:
    return RewardSummary(
        id=reward.id,
        code=reward.code,
        title=reward.title,
        category=reward.category,
        rarity=reward.rarity,
        xp_awarded=reward.xp_awarded,
        level_achieved=reward.level_achieved,
        unlocked_at=reward.unlocked_at.isoformat(),
        metadata=reward.details,
    )


def build_upcoming_goals(
    modules: list[ModuleSummary],
    competencies: list[CompetencySummary],
    current_streak: int,
    limit: int = 6,
) -> list[UpcomingGoal]:
    """
    Rank what the learner is closest to finishing.

    Unfinished modules (target 100), competencies below 80 mastery (target 80)
    and the next streak threshold, ordered by progress/target descending.
    """
    goals = [
        UpcomingGoal(
            id=f"module:{module.id}",
            title=module.title,
            description="Complete the remaining activities to unlock new rewards.",
            progress=module.completion,
            target=MODULE_GOAL_TARGET,
            type="module",
        )
        for module in modules
        if module.completion < MODULE_GOAL_TARGET
    ]

    goals.extend(
        UpcomingGoal(
            id=f"competency:{competency.id}",
            title=f"Master {competency.code}",
            description="Raise your mastery above 80 to celebrate a new curriculum achievement.",
            progress=competency.mastery,
            target=MASTERY_BADGE_THRESHOLD,
            type="competency",
        )
        for competency in competencies
        if competency.mastery < MASTERY_BADGE_THRESHOLD
    )

    streak_target = next_streak_target(current_streak)
    if streak_target is not None:
        goals.append(
            UpcomingGoal(
                id=f"streak:{streak_target}",
                title=f"{streak_target} wins in a row",
                description="Keep the run of correct answers going to earn a shiny bonus.",
                progress=current_streak,
                target=streak_target,
                type="streak",
            )
        )

    goals.sort(key=lambda goal: goal.progress / goal.target, reverse=True)
    return goals[:limit]


def get_progress_summary(store: ProgressStore, learner_id: str) -> ProgressSummary:
    """Learner-facing dashboard summary."""
    settings = get_settings()

    learner = store.get_learner(learner_id)
    if learner is None:
        raise LearnerNotFoundError(learner_id)

    modules = [summarize_module(row) for row in store.list_module_progress(learner_id)]
    competencies = [
        summarize_competency(row) for row in store.list_competency_progress(learner_id)
    ]
    rewards = [
        summarize_reward(row)
        for row in store.list_rewards(learner_id, limit=settings.summary_reward_limit)
    ]

    return ProgressSummary(
        learner=summarize_learner(learner),
        modules=modules,
        competencies=competencies,
        rewards=rewards,
        upcoming_goals=build_upcoming_goals(
            modules, competencies, learner.current_streak, limit=settings.upcoming_goal_limit
        ),
    )


def _focus_recommendation(module: ModuleSummary) -> str:
    if module.curriculum_code is not None:
        return f'Revisit the module "{module.title}" highlighting the competency {module.curriculum_code}.'
    return f'Revisit the module "{module.title}" reinforcing evidence of learning.'


def build_educator_digest(summary: ProgressSummary) -> EducatorDigest:
    """Educator-facing digest derived from a progress summary."""
    modules = summary.modules
    mastery_average = (
        round_half_up(sum(module.mastery for module in modules) / len(modules)) if modules else 0
    )

    strengths = [
        Strength(code=competency.code, competency=competency.competency, mastery=competency.mastery)
        for competency in sorted(
            (c for c in summary.competencies if c.mastery >= MASTERY_BADGE_THRESHOLD),
            key=lambda c: c.mastery,
            reverse=True,
        )[:DIGEST_SLOTS]
    ]

    focus_areas = [
        FocusArea(
            module_id=module.id,
            title=module.title,
            mastery=module.mastery,
            recommendation=_focus_recommendation(module),
        )
        for module in sorted(
            (m for m in modules if m.mastery < FOCUS_MASTERY_CEILING),
            key=lambda m: m.mastery,
        )[:DIGEST_SLOTS]
    ]

    recent_rewards = [
        RecentReward(
            id=reward.id,
            title=reward.title,
            category=reward.category,
            rarity=reward.rarity,
            unlocked_at=reward.unlocked_at,
        )
        for reward in summary.rewards[:DIGEST_SLOTS]
    ]

    # dict keeps insertion order and drops duplicates
    recommendations: dict[str, None] = {}
    if focus_areas:
        recommendations[
            f'Plan dedicated follow-up for "{focus_areas[0].title}" and record evidence of progress.'
        ] = None
    if summary.upcoming_goals:
        recommendations[
            f'Agree on a short routine to reach the goal "{summary.upcoming_goals[0].title}".'
        ] = None
    if strengths:
        recommendations[
            f"Share the highlight in {strengths[0].competency} with the family and celebrate it."
        ] = None
    if summary.learner.current_streak >= MOMENTUM_STREAK:
        recommendations[
            "Keep the study streak alive with quick daily activities to preserve motivation."
        ] = None

    learner = summary.learner
    return EducatorDigest(
        learner=DigestLearner(
            id=learner.id,
            display_name=learner.display_name,
            level=learner.level,
            xp=learner.xp,
            xp_to_next=learner.xp_to_next,
            mastery_average=mastery_average,
            current_streak=learner.current_streak,
            longest_streak=learner.longest_streak,
            completed_modules=sum(1 for m in modules if m.completion >= MODULE_GOAL_TARGET),
            reward_count=len(summary.rewards),
        ),
        strengths=strengths,
        focus_areas=focus_areas,
        recent_rewards=recent_rewards,
        upcoming_goals=summary.upcoming_goals,
        recommendations=list(recommendations),
    )


def get_educator_digest(store: ProgressStore, learner_id: str) -> EducatorDigest:
    digest = build_educator_digest(get_progress_summary(store, learner_id))
    logger.debug(
        f"Digest for {learner_id}: {len(digest.strengths)} strength(s), "
        f"{len(digest.focus_areas)} focus area(s)"
    )
    return digest


def list_rewards(store: ProgressStore, learner_id: str) -> list[RewardSummary]:
    """Every reward of a learner, newest first."""
    if store.get_learner(learner_id) is None:
        raise LearnerNotFoundError(learner_id)
    return [summarize_reward(reward) for reward in store.list_rewards(learner_id)]
