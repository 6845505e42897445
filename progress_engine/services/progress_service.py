"""
Progress Update Orchestrator.

Applies one submitted attempt inside the caller's transaction:

1. Lock and re-read the learner (authoritative "before" state)
2. Persist the immutable Attempt
3. Load full module and competency histories (including the new attempt)
4. Recompute ModuleProgress / CompetencyProgress from scratch and upsert them
5. Advance the learner streak, XP and level
6. Evaluate reward threshold crossings against the previous snapshots
7. Mint each reward with insert-if-absent (existing codes are skipped)

Any error other than an already-unlocked reward propagates, and the caller's
session_scope() rolls every write back.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime

from loguru import logger
from sqlalchemy.orm import Session

from progress_engine.core.leveling import compute_level_from_xp, compute_xp_gain
from progress_engine.core.metrics import (
    CompetencyMetrics,
    ModuleMetrics,
    compute_competency_metrics,
    compute_module_metrics,
)
from progress_engine.core.rewards import (
    CompetencySnapshot,
    GameStateSnapshot,
    ModuleSnapshot,
    RewardCandidate,
    RewardContext,
    evaluate_rewards,
)
from progress_engine.db.models import (
    Attempt,
    CompetencyProgress,
    Learner,
    ModuleProgress,
    Reward,
)
from progress_engine.db.models.base import new_id
from progress_engine.db.repository import ProgressRepository, ProgressStore
from progress_engine.exceptions import ActivityNotFoundError, LearnerNotFoundError
from progress_engine.schemas import ActivityDescriptor, AttemptInput


@dataclass
class ProgressUpdateResult:
    """Everything one attempt changed."""

    attempt: Attempt
    module_progress: ModuleProgress
    competency_progress: CompetencyProgress
    learner: Learner
    xp_gained: int
    rewards: list[Reward] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "attempt": self.attempt.to_dict(),
            "module_progress": self.module_progress.to_dict(),
            "competency_progress": self.competency_progress.to_dict(),
            "learner": self.learner.to_dict(),
            "xp_gained": self.xp_gained,
            "rewards": [reward.to_dict() for reward in self.rewards],
        }


@dataclass
class RebuildResult:
    learner_id: str
    modules: int
    competencies: int
    attempts: int


def _apply_module_metrics(
    progress: ModuleProgress, metrics: ModuleMetrics, last_activity_at: datetime
) -> None:
    progress.completion = metrics.completion
    progress.status = metrics.status.value
    progress.mastery = metrics.mastery
    progress.current_streak = metrics.current_streak
    progress.best_streak = metrics.best_streak
    progress.average_accuracy = metrics.average_accuracy
    progress.average_time_seconds = metrics.average_time_seconds
    progress.total_attempts = metrics.total_attempts
    progress.last_activity_at = last_activity_at


def _apply_competency_metrics(
    progress: CompetencyProgress, metrics: CompetencyMetrics, last_interaction_at: datetime
) -> None:
    progress.mastery = metrics.mastery
    progress.current_streak = metrics.current_streak
    progress.best_streak = metrics.best_streak
    progress.accuracy = metrics.accuracy
    progress.average_time_seconds = metrics.average_time_seconds
    progress.attempts_count = metrics.attempts_count
    progress.last_interaction_at = last_interaction_at


def _reward_from_candidate(learner_id: str, candidate: RewardCandidate) -> Reward:
    return Reward(
        id=new_id(),
        learner_id=learner_id,
        code=candidate.code,
        title=candidate.title,
        description=candidate.description,
        criteria=candidate.criteria,
        icon=candidate.icon,
        category=candidate.category.value,
        rarity=candidate.rarity.value,
        xp_awarded=candidate.xp_awarded,
        level_achieved=candidate.level_achieved,
        details=candidate.metadata,
        unlocked_at=candidate.unlocked_at,
    )


class ProgressService:
    """
    Progress, mastery and reward-unlock engine.

    Holds no state of its own; everything goes through the store, which is
    bound to the caller's transaction.
    """

    def __init__(self, store: ProgressStore):
        self.store = store

    def apply_attempt(
        self,
        activity: ActivityDescriptor,
        attempt_input: AttemptInput,
        submitted_at: datetime,
    ) -> ProgressUpdateResult:
        """
        Record one attempt and bring every aggregate up to date.

        Args:
            activity: Catalog descriptor of the attempted activity
            attempt_input: Boundary-validated attempt
            submitted_at: Submission timestamp (orders the history)

        Returns:
            ProgressUpdateResult with the newly minted rewards only
        """
        store = self.store
        learner_id = attempt_input.learner_id
        module_id = activity.module.id
        standard_id = activity.curriculum_standard.id

        learner = store.lock_learner(learner_id)
        if learner is None:
            raise LearnerNotFoundError(learner_id)
        user_before = GameStateSnapshot(
            xp=learner.xp, level=learner.level, current_streak=learner.current_streak
        )

        attempt = store.add_attempt(
            Attempt(
                id=new_id(),
                learner_id=learner_id,
                activity_id=activity.id,
                success=attempt_input.success,
                score=attempt_input.score,
                max_score=attempt_input.max_score,
                accuracy=attempt_input.accuracy,
                time_spent_seconds=attempt_input.time_spent_seconds,
                attempt_metadata=attempt_input.metadata,
                submitted_at=submitted_at,
            )
        )
        logger.debug(f"Attempt {attempt.id} stored for learner {learner_id} on {activity.slug}")

        module_attempts = store.list_module_attempts(learner_id, module_id)
        competency_attempts = store.list_competency_attempts(learner_id, standard_id)
        module_progress = store.get_module_progress(learner_id, module_id)
        competency_progress = store.get_competency_progress(learner_id, standard_id)

        previous_module = (
            ModuleSnapshot(
                completion=module_progress.completion,
                current_streak=module_progress.current_streak,
                mastery=module_progress.mastery,
            )
            if module_progress is not None
            else None
        )
        previous_competency = (
            CompetencySnapshot(
                mastery=competency_progress.mastery,
                current_streak=competency_progress.current_streak,
            )
            if competency_progress is not None
            else None
        )

        module_metrics = compute_module_metrics(module_attempts)
        competency_metrics = compute_competency_metrics(competency_attempts)

        if module_progress is None:
            module_progress = ModuleProgress(id=new_id(), learner_id=learner_id, module_id=module_id)
        _apply_module_metrics(module_progress, module_metrics, submitted_at)
        module_progress = store.save_module_progress(module_progress)

        if competency_progress is None:
            competency_progress = CompetencyProgress(
                id=new_id(), learner_id=learner_id, curriculum_standard_id=standard_id
            )
        _apply_competency_metrics(competency_progress, competency_metrics, submitted_at)
        competency_progress = store.save_competency_progress(competency_progress)

        logger.debug(
            f"Module {module_id}: completion={module_metrics.completion} "
            f"mastery={module_metrics.mastery}; competency {standard_id}: "
            f"mastery={competency_metrics.mastery}"
        )

        # Platform-wide streak, independent of the per-module streaks
        streak = learner.current_streak + 1 if attempt_input.success else 0
        xp_gained = compute_xp_gain(attempt_input, streak)
        total_xp = learner.xp + xp_gained
        level_info = compute_level_from_xp(total_xp)

        learner.xp = total_xp
        learner.level = level_info.level
        learner.next_level_at = level_info.next_level_at
        learner.current_streak = streak
        learner.longest_streak = max(learner.longest_streak, streak)
        learner = store.save_learner(learner)

        user_after = GameStateSnapshot(
            xp=learner.xp, level=learner.level, current_streak=learner.current_streak
        )
        candidates = evaluate_rewards(
            module=module_metrics,
            competency=competency_metrics,
            user_before=user_before,
            user_after=user_after,
            context=RewardContext(
                module_id=module_id,
                module_slug=activity.module.slug,
                module_title=activity.module.title,
                curriculum_standard_id=standard_id,
                curriculum_code=activity.curriculum_standard.code,
                competency_label=activity.curriculum_standard.competency,
                previous_module=previous_module,
                previous_competency=previous_competency,
            ),
            xp_gained=xp_gained,
            unlocked_at=submitted_at,
        )

        rewards: list[Reward] = []
        for candidate in candidates:
            created = store.insert_reward_if_absent(_reward_from_candidate(learner_id, candidate))
            if created is not None:
                rewards.append(created)

        if rewards:
            logger.info(
                f"Learner {learner_id} unlocked {len(rewards)} reward(s): "
                + ", ".join(reward.code for reward in rewards)
            )

        return ProgressUpdateResult(
            attempt=attempt,
            module_progress=module_progress,
            competency_progress=competency_progress,
            learner=learner,
            xp_gained=xp_gained,
            rewards=rewards,
        )

    def rebuild_learner_progress(self, learner_id: str) -> RebuildResult:
        """
        Recompute every module and competency aggregate of a learner from history.

        Repair/backfill only: never mints rewards and never touches XP.
        """
        store = self.store
        if store.get_learner(learner_id) is None:
            raise LearnerNotFoundError(learner_id)

        attempts = store.list_learner_attempts(learner_id)
        by_module: dict[str, list[Attempt]] = defaultdict(list)
        by_standard: dict[str, list[Attempt]] = defaultdict(list)
        for attempt in attempts:
            by_module[attempt.activity.module_id].append(attempt)
            by_standard[attempt.activity.curriculum_standard_id].append(attempt)

        for module_id, history in by_module.items():
            progress = store.get_module_progress(learner_id, module_id) or ModuleProgress(
                id=new_id(), learner_id=learner_id, module_id=module_id
            )
            _apply_module_metrics(
                progress, compute_module_metrics(history), history[-1].submitted_at
            )
            store.save_module_progress(progress)

        for standard_id, history in by_standard.items():
            progress = store.get_competency_progress(
                learner_id, standard_id
            ) or CompetencyProgress(
                id=new_id(), learner_id=learner_id, curriculum_standard_id=standard_id
            )
            _apply_competency_metrics(
                progress, compute_competency_metrics(history), history[-1].submitted_at
            )
            store.save_competency_progress(progress)

        logger.info(
            f"Rebuilt progress for {learner_id}: {len(by_module)} module(s), "
            f"{len(by_standard)} competency row(s) from {len(attempts)} attempt(s)"
        )
        return RebuildResult(
            learner_id=learner_id,
            modules=len(by_module),
            competencies=len(by_standard),
            attempts=len(attempts),
        )


def log_attempt(
    session: Session,
    attempt_input: AttemptInput,
    submitted_at: datetime | None = None,
) -> ProgressUpdateResult:
    """
    Boundary helper: resolve learner and activity, then apply the attempt.

    Runs inside the caller's transaction. Missing rows are rejected before
    anything is written.
    """
    repository = ProgressRepository(session)

    if repository.get_learner(attempt_input.learner_id) is None:
        raise LearnerNotFoundError(attempt_input.learner_id)
    activity = repository.get_activity(attempt_input.activity_id)
    if activity is None:
        raise ActivityNotFoundError(attempt_input.activity_id)

    return ProgressService(repository).apply_attempt(
        ActivityDescriptor.from_model(activity),
        attempt_input,
        submitted_at or datetime.now(UTC),
    )
