"""
Reward Evaluator.

Compares a "previous" snapshot with freshly computed state and returns the
reward candidates whose threshold was crossed by this attempt. A rule fires
only when the previous value was below the bar and the new value is at or
above it, so the evaluator never needs to know which rewards already exist and
is safe to call on every attempt. Duplicate codes are absorbed later by the
store's insert-if-absent.

Rules:
- module completion reaches 100        -> module:<id>:completion
- module streak crosses 3 / 5 / 10     -> module:<id>:streak:<n>
- competency mastery crosses 80 / 95   -> competency:<id>:mastery80 / mastery95
- learner level increases              -> level:<n>
- cumulative XP crosses a 500 multiple -> xp:<milestone>
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import ClassVar, Union

from progress_engine.core.leveling import STREAK_REWARD_THRESHOLDS, XP_MILESTONE_STEP
from progress_engine.core.metrics import CompetencyMetrics, ModuleMetrics

MODULE_COMPLETION_XP = 220
STREAK_XP_PER_STEP = 40
MASTERY_BADGE_THRESHOLD = 80
MASTERY_BADGE_XP = 180
MASTERY_COLLECTIBLE_THRESHOLD = 95
MASTERY_COLLECTIBLE_XP = 260
LEGENDARY_LEVEL = 4
EPIC_XP_MILESTONE_INDEX = 4


class RewardCategory(str, Enum):
    BADGE = "BADGE"
    COLLECTIBLE = "COLLECTIBLE"
    LEVEL = "LEVEL"
    XP = "XP"


class RewardRarity(str, Enum):
    RARE = "RARE"
    EPIC = "EPIC"
    LEGENDARY = "LEGENDARY"

    @classmethod
    def for_streak(cls, threshold: int) -> RewardRarity:
        if threshold >= 10:
            return cls.LEGENDARY
        if threshold >= 5:
            return cls.EPIC
        return cls.RARE


# ============================================================================
# Reward details (one closed variant per reward kind)
# ============================================================================


@dataclass(frozen=True)
class _Details:
    kind: ClassVar[str]

    def to_metadata(self) -> dict:
        return {"kind": self.kind, **asdict(self)}


@dataclass(frozen=True)
class ModuleCompletionDetails(_Details):
    kind: ClassVar[str] = "module_completion"
    module_slug: str
    curriculum_code: str


@dataclass(frozen=True)
class StreakDetails(_Details):
    kind: ClassVar[str] = "module_streak"
    module_slug: str
    streak: int


@dataclass(frozen=True)
class CompetencyMasteryDetails(_Details):
    kind: ClassVar[str] = "competency_mastery"
    curriculum_code: str
    mastery: int


@dataclass(frozen=True)
class LevelUpDetails(_Details):
    kind: ClassVar[str] = "level_up"
    xp_total: int
    xp_gained: int


@dataclass(frozen=True)
class XpMilestoneDetails(_Details):
    kind: ClassVar[str] = "xp_milestone"
    milestone: int


RewardDetails = Union[
    ModuleCompletionDetails,
    StreakDetails,
    CompetencyMasteryDetails,
    LevelUpDetails,
    XpMilestoneDetails,
]


# ============================================================================
# Snapshots and candidates
# ============================================================================


@dataclass(frozen=True)
class ModuleSnapshot:
    completion: int
    current_streak: int
    mastery: int


@dataclass(frozen=True)
class CompetencySnapshot:
    mastery: int
    current_streak: int


@dataclass(frozen=True)
class GameStateSnapshot:
    xp: int
    level: int
    current_streak: int


@dataclass(frozen=True)
class RewardContext:
    """Catalog identity of the attempt plus the pre-attempt aggregates."""

    module_id: str
    module_slug: str
    module_title: str
    curriculum_standard_id: str
    curriculum_code: str
    competency_label: str
    previous_module: ModuleSnapshot | None = None
    previous_competency: CompetencySnapshot | None = None


@dataclass(frozen=True)
class RewardCandidate:
    """A reward to mint, keyed by its idempotency code."""

    code: str
    title: str
    category: RewardCategory
    rarity: RewardRarity
    details: RewardDetails
    unlocked_at: datetime
    description: str | None = None
    criteria: str | None = None
    icon: str | None = None
    xp_awarded: int = 0
    level_achieved: int | None = None

    @property
    def metadata(self) -> dict:
        return self.details.to_metadata()


def _crossed(previous: float, current: float, threshold: float) -> bool:
    return previous < threshold <= current


def evaluate_rewards(
    module: ModuleMetrics,
    competency: CompetencyMetrics,
    user_before: GameStateSnapshot,
    user_after: GameStateSnapshot,
    context: RewardContext,
    xp_gained: int,
    unlocked_at: datetime,
) -> list[RewardCandidate]:
    """
    Decide which rewards this attempt unlocks.

    Args:
        module: New module metrics
        competency: New competency metrics
        user_before: Learner game state before the attempt
        user_after: Learner game state after the attempt
        context: Module/competency identity and previous aggregates (None = never attempted)
        xp_gained: XP earned by the attempt
        unlocked_at: Timestamp stamped on every candidate

    Returns:
        Candidates in rule order; several may fire at once
    """
    rewards: list[RewardCandidate] = []
    previous_module = context.previous_module
    previous_competency = context.previous_competency

    previous_completion = previous_module.completion if previous_module else 0
    if _crossed(previous_completion, module.completion, 100):
        rewards.append(
            RewardCandidate(
                code=f"module:{context.module_id}:completion",
                title=f"{context.module_title} master",
                description=f"Finished 100% of the module {context.module_title}.",
                criteria="Complete every activity with a high score.",
                icon="trophy-gold",
                category=RewardCategory.BADGE,
                rarity=RewardRarity.EPIC,
                xp_awarded=MODULE_COMPLETION_XP,
                details=ModuleCompletionDetails(
                    module_slug=context.module_slug,
                    curriculum_code=context.curriculum_code,
                ),
                unlocked_at=unlocked_at,
            )
        )

    previous_streak = previous_module.current_streak if previous_module else 0
    for threshold in STREAK_REWARD_THRESHOLDS:
        if not _crossed(previous_streak, module.current_streak, threshold):
            continue
        rewards.append(
            RewardCandidate(
                code=f"module:{context.module_id}:streak:{threshold}",
                title=f"{threshold} wins in a row!",
                description=(
                    f"Kept {threshold} consecutive successes in the module {context.module_title}."
                ),
                criteria=f"Reach {threshold} successful attempts without a miss.",
                icon="streak",
                category=RewardCategory.BADGE,
                rarity=RewardRarity.for_streak(threshold),
                xp_awarded=threshold * STREAK_XP_PER_STEP,
                details=StreakDetails(module_slug=context.module_slug, streak=threshold),
                unlocked_at=unlocked_at,
            )
        )

    previous_mastery = previous_competency.mastery if previous_competency else 0
    if _crossed(previous_mastery, competency.mastery, MASTERY_BADGE_THRESHOLD):
        rewards.append(
            RewardCandidate(
                code=f"competency:{context.curriculum_standard_id}:mastery80",
                title="Proven mastery!",
                description=f"Reached high mastery in the competency {context.competency_label}.",
                criteria="Keep an average above 80 on attempts aligned to this competency.",
                icon="medal-star",
                category=RewardCategory.BADGE,
                rarity=RewardRarity.EPIC,
                xp_awarded=MASTERY_BADGE_XP,
                details=CompetencyMasteryDetails(
                    curriculum_code=context.curriculum_code,
                    mastery=competency.mastery,
                ),
                unlocked_at=unlocked_at,
            )
        )

    if _crossed(previous_mastery, competency.mastery, MASTERY_COLLECTIBLE_THRESHOLD):
        rewards.append(
            RewardCandidate(
                code=f"competency:{context.curriculum_standard_id}:mastery95",
                title="Knowledge collector",
                description=f"You turned the competency {context.competency_label} into a superpower!",
                criteria="Exceed 95 mastery points in the curriculum competency.",
                icon="badge-legendary",
                category=RewardCategory.COLLECTIBLE,
                rarity=RewardRarity.LEGENDARY,
                xp_awarded=MASTERY_COLLECTIBLE_XP,
                details=CompetencyMasteryDetails(
                    curriculum_code=context.curriculum_code,
                    mastery=competency.mastery,
                ),
                unlocked_at=unlocked_at,
            )
        )

    if user_after.level > user_before.level:
        rewards.append(
            RewardCandidate(
                code=f"level:{user_after.level}",
                title=f"Level {user_after.level} unlocked",
                description="Every challenge you take on opens new possibilities!",
                criteria="Earn enough experience to level up.",
                icon="level-up",
                category=RewardCategory.LEVEL,
                rarity=(
                    RewardRarity.LEGENDARY
                    if user_after.level >= LEGENDARY_LEVEL
                    else RewardRarity.EPIC
                ),
                level_achieved=user_after.level,
                details=LevelUpDetails(xp_total=user_after.xp, xp_gained=xp_gained),
                unlocked_at=unlocked_at,
            )
        )

    previous_milestone = user_before.xp // XP_MILESTONE_STEP
    current_milestone = user_after.xp // XP_MILESTONE_STEP
    if current_milestone > previous_milestone:
        milestone = current_milestone * XP_MILESTONE_STEP
        rewards.append(
            RewardCandidate(
                code=f"xp:{milestone}",
                title="XP milestone",
                description=f"You passed {milestone} accumulated experience points!",
                criteria=f"Advance {XP_MILESTONE_STEP} XP.",
                icon="xp-gem",
                category=RewardCategory.XP,
                rarity=(
                    RewardRarity.EPIC
                    if current_milestone >= EPIC_XP_MILESTONE_INDEX
                    else RewardRarity.RARE
                ),
                details=XpMilestoneDetails(milestone=milestone),
                unlocked_at=unlocked_at,
            )
        )

    return rewards
