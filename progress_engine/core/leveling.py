"""
Leveling Function and per-attempt XP.

Level 1 spans [0, 1000); each further level is 500 XP wider than the
previous threshold:

    level n is left once cumulative XP reaches 1000 + (n - 1) * 500

So 0 XP -> level 1 (next at 1000), 1000 -> level 2 (next at 1500),
1700 -> level 3 (next at 2000).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from progress_engine.core.metrics import clamp, round_half_up

LEVEL_BASE_THRESHOLD = 1000
LEVEL_STEP = 500
STREAK_REWARD_THRESHOLDS = (3, 5, 10)
XP_MILESTONE_STEP = 500

# XP formula constants
XP_BASE_SUCCESS = 80
XP_BASE_FAILURE = 25
XP_FLOOR = 15
XP_PACING_BONUS = 30
XP_PACING_WINDOW = (60, 360)
XP_STREAK_MIN = 3
XP_STREAK_MULTIPLIER = 5


class XpInput(Protocol):
    success: bool
    score: float | None
    accuracy: float | None
    time_spent_seconds: float | None


@dataclass(frozen=True)
class LevelInfo:
    level: int
    next_level_at: int


def level_threshold(level: int) -> int:
    """Cumulative XP needed to leave `level`."""
    return LEVEL_BASE_THRESHOLD + max(0, level - 1) * LEVEL_STEP


def level_floor(level: int) -> int:
    """Cumulative XP at which `level` starts."""
    if level <= 1:
        return 0
    return LEVEL_BASE_THRESHOLD + (level - 2) * LEVEL_STEP


def compute_level_from_xp(xp: int) -> LevelInfo:
    """Map cumulative XP to its level and the first threshold not yet reached."""
    level = 1
    next_threshold = level_threshold(level)

    while xp >= next_threshold:
        level += 1
        next_threshold = level_threshold(level)

    return LevelInfo(level=level, next_level_at=next_threshold)


def streak_bonus(streak: int) -> int:
    return streak * XP_STREAK_MULTIPLIER if streak >= XP_STREAK_MIN else 0


def compute_xp_gain(attempt: XpInput, streak: int) -> int:
    """
    XP earned by one attempt.

    Args:
        attempt: The submitted attempt
        streak: Learner's platform-wide consecutive-success streak after this attempt

    Returns:
        XP gained, never below 15
    """
    base = XP_BASE_SUCCESS if attempt.success else XP_BASE_FAILURE
    score_contribution = round_half_up(attempt.score * 0.5) if attempt.score is not None else 0
    accuracy_contribution = (
        round_half_up(attempt.accuracy * 60) if attempt.accuracy is not None else 0
    )

    low, high = XP_PACING_WINDOW
    time_contribution = (
        XP_PACING_BONUS
        if attempt.time_spent_seconds is not None and low <= attempt.time_spent_seconds <= high
        else 0
    )

    return max(
        XP_FLOOR,
        base + score_contribution + accuracy_contribution + time_contribution + streak_bonus(streak),
    )


def xp_progress_percent(xp: int, level: int, next_level_at: int) -> int:
    """Share of the current level band already covered, 0-100."""
    floor = level_floor(level)
    span = next_level_at - floor
    if span <= 0:
        return 100
    return int(clamp(round_half_up((xp - floor) / span * 100)))


def next_streak_target(streak: int) -> int | None:
    """First streak reward threshold strictly above `streak`, if any."""
    return next((threshold for threshold in STREAK_REWARD_THRESHOLDS if threshold > streak), None)
