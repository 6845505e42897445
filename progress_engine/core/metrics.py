"""
Metrics Calculator.

Turns an ordered attempt history (oldest first) into completion, mastery,
streak and average statistics for a module or a curriculum competency.

Formulas:
    completion = 100                                   if score average >= 95
               = round(0.7 * normalized_score + 0.3 * success_rate * 100)
    mastery    = round(0.5 * normalized_score
                       + 0.3 * normalized_accuracy
                       + 0.2 * success_rate * 100
                       + min(best_streak * 5, 25)
                       + time_bonus)                  clamped to [0, 100]

normalized_score falls back to success_rate * 100 when no score was recorded;
normalized_accuracy falls back to normalized_score when no accuracy was recorded.

No I/O happens here. Both full-history functions fold the history through
MetricsAccumulator, so a running accumulator fed one attempt at a time always
agrees with a from-scratch recomputation.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Protocol

COMPLETION_SCORE_SHORTCUT = 95
STREAK_BONUS_PER_ATTEMPT = 5
STREAK_BONUS_CAP = 25


class AttemptLike(Protocol):
    """Anything carrying the fields the calculator reads (ORM row or dataclass)."""

    success: bool
    score: float | None
    accuracy: float | None
    time_spent_seconds: float | None


class ProgressStatus(str, Enum):
    """Module status, a pure function of completion."""

    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"

    @classmethod
    def from_completion(cls, completion: float) -> ProgressStatus:
        if completion >= 100:
            return cls.COMPLETED
        if completion > 0:
            return cls.IN_PROGRESS
        return cls.NOT_STARTED


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives (builtin round() is banker's rounding)."""
    return int(math.floor(value + 0.5))


def clamp(value: float, minimum: float = 0, maximum: float = 100) -> float:
    return min(max(value, minimum), maximum)


def compute_time_bonus(average_time_seconds: float) -> int:
    """
    Pacing bonus applied to mastery.

    0 means no timing data and gives no bonus. Rushing (<40s) and very long
    attempts (>360s) are penalised; 91-200s is the sweet spot.
    """
    if average_time_seconds == 0:
        return 0
    if average_time_seconds < 40:
        return -6
    if average_time_seconds <= 90:
        return 6
    if average_time_seconds <= 200:
        return 10
    if average_time_seconds <= 360:
        return 4
    return -2


def compute_completion(success_rate: float, score_average: float | None) -> int:
    if score_average is not None and score_average >= COMPLETION_SCORE_SHORTCUT:
        return 100
    normalized_score = score_average if score_average is not None else success_rate * 100
    completion_score = normalized_score * 0.7 + success_rate * 100 * 0.3
    return int(clamp(round_half_up(completion_score)))


def compute_mastery(
    success_rate: float,
    score_average: float | None,
    accuracy_average: float | None,
    best_streak: int,
    average_time_seconds: float,
) -> int:
    normalized_score = score_average if score_average is not None else success_rate * 100
    normalized_accuracy = (
        accuracy_average * 100 if accuracy_average is not None else normalized_score
    )
    mastery_base = normalized_score * 0.5 + normalized_accuracy * 0.3 + success_rate * 100 * 0.2
    mastery_with_bonuses = (
        mastery_base
        + min(best_streak * STREAK_BONUS_PER_ATTEMPT, STREAK_BONUS_CAP)
        + compute_time_bonus(average_time_seconds)
    )
    return int(clamp(round_half_up(mastery_with_bonuses)))


@dataclass(frozen=True)
class ModuleMetrics:
    """Freshly computed values for a ModuleProgress row."""

    completion: int
    status: ProgressStatus
    current_streak: int
    best_streak: int
    average_accuracy: float
    average_time_seconds: int
    mastery: int
    total_attempts: int

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass(frozen=True)
class CompetencyMetrics:
    """Freshly computed values for a CompetencyProgress row."""

    mastery: int
    current_streak: int
    best_streak: int
    accuracy: float
    average_time_seconds: int
    attempts_count: int

    def to_dict(self) -> dict:
        return asdict(self)


EMPTY_MODULE_METRICS = ModuleMetrics(
    completion=0,
    status=ProgressStatus.NOT_STARTED,
    current_streak=0,
    best_streak=0,
    average_accuracy=0.0,
    average_time_seconds=0,
    mastery=0,
    total_attempts=0,
)

EMPTY_COMPETENCY_METRICS = CompetencyMetrics(
    mastery=0,
    current_streak=0,
    best_streak=0,
    accuracy=0.0,
    average_time_seconds=0,
    attempts_count=0,
)


class MetricsAccumulator:
    """
    Running aggregate over an attempt stream.

    Holds sums, counts and streak state only, so adding an attempt is O(1).
    Optional fields that are None are excluded from their mean.
    """

    def __init__(self) -> None:
        self.total = 0
        self.successes = 0
        self.score_sum = 0.0
        self.score_count = 0
        self.accuracy_sum = 0.0
        self.accuracy_count = 0
        self.time_sum = 0.0
        self.time_count = 0
        self.current_streak = 0
        self.best_streak = 0

    def add(self, attempt: AttemptLike) -> MetricsAccumulator:
        self.total += 1

        if attempt.success:
            self.successes += 1
            self.current_streak += 1
            self.best_streak = max(self.best_streak, self.current_streak)
        else:
            self.current_streak = 0

        if attempt.score is not None:
            self.score_sum += attempt.score
            self.score_count += 1
        if attempt.accuracy is not None:
            self.accuracy_sum += attempt.accuracy
            self.accuracy_count += 1
        if attempt.time_spent_seconds is not None:
            self.time_sum += attempt.time_spent_seconds
            self.time_count += 1

        return self

    def extend(self, attempts: Iterable[AttemptLike]) -> MetricsAccumulator:
        for attempt in attempts:
            self.add(attempt)
        return self

    @property
    def success_rate(self) -> float:
        return self.successes / self.total if self.total else 0.0

    @property
    def score_average(self) -> float | None:
        return self.score_sum / self.score_count if self.score_count else None

    @property
    def accuracy_average(self) -> float | None:
        return self.accuracy_sum / self.accuracy_count if self.accuracy_count else None

    @property
    def time_average(self) -> float:
        return self.time_sum / self.time_count if self.time_count else 0.0

    def _mastery(self) -> int:
        return compute_mastery(
            self.success_rate,
            self.score_average,
            self.accuracy_average,
            self.best_streak,
            self.time_average,
        )

    def module_metrics(self) -> ModuleMetrics:
        if self.total == 0:
            return EMPTY_MODULE_METRICS

        completion = compute_completion(self.success_rate, self.score_average)
        return ModuleMetrics(
            completion=completion,
            status=ProgressStatus.from_completion(completion),
            current_streak=self.current_streak,
            best_streak=self.best_streak,
            average_accuracy=round(self.accuracy_average or 0.0, 4),
            average_time_seconds=round_half_up(self.time_average),
            mastery=self._mastery(),
            total_attempts=self.total,
        )

    def competency_metrics(self) -> CompetencyMetrics:
        if self.total == 0:
            return EMPTY_COMPETENCY_METRICS

        return CompetencyMetrics(
            mastery=self._mastery(),
            current_streak=self.current_streak,
            best_streak=self.best_streak,
            accuracy=round(self.accuracy_average or 0.0, 4),
            average_time_seconds=round_half_up(self.time_average),
            attempts_count=self.total,
        )


def compute_module_metrics(attempts: Iterable[AttemptLike]) -> ModuleMetrics:
    """Module-scoped metrics from the full history, oldest attempt first."""
    return MetricsAccumulator().extend(attempts).module_metrics()


def compute_competency_metrics(attempts: Iterable[AttemptLike]) -> CompetencyMetrics:
    """Competency-scoped metrics from the full history, oldest attempt first."""
    return MetricsAccumulator().extend(attempts).competency_metrics()
