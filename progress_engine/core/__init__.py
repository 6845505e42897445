"""
Core Module - pure progress, leveling and reward logic.

Components:
- metrics: Metrics Calculator (completion, mastery, streaks, averages)
- leveling: XP -> level step function and per-attempt XP
- rewards: Reward Evaluator (threshold crossings -> reward candidates)

Nothing in this package touches the database.
"""

from progress_engine.core.leveling import (
    LEVEL_BASE_THRESHOLD,
    LEVEL_STEP,
    STREAK_REWARD_THRESHOLDS,
    LevelInfo,
    compute_level_from_xp,
    compute_xp_gain,
    level_floor,
    xp_progress_percent,
)
from progress_engine.core.metrics import (
    CompetencyMetrics,
    MetricsAccumulator,
    ModuleMetrics,
    ProgressStatus,
    compute_competency_metrics,
    compute_module_metrics,
)
from progress_engine.core.rewards import (
    CompetencySnapshot,
    GameStateSnapshot,
    ModuleSnapshot,
    RewardCandidate,
    RewardCategory,
    RewardContext,
    RewardRarity,
    evaluate_rewards,
)

__all__ = [
    # Metrics
    "CompetencyMetrics",
    "MetricsAccumulator",
    "ModuleMetrics",
    "ProgressStatus",
    "compute_competency_metrics",
    "compute_module_metrics",
    # Leveling
    "LEVEL_BASE_THRESHOLD",
    "LEVEL_STEP",
    "STREAK_REWARD_THRESHOLDS",
    "LevelInfo",
    "compute_level_from_xp",
    "compute_xp_gain",
    "level_floor",
    "xp_progress_percent",
    # Rewards
    "CompetencySnapshot",
    "GameStateSnapshot",
    "ModuleSnapshot",
    "RewardCandidate",
    "RewardCategory",
    "RewardContext",
    "RewardRarity",
    "evaluate_rewards",
]
