"""Errors raised by the progress engine and its boundary helpers."""

from __future__ import annotations


class ProgressEngineError(Exception):
    """Base class for engine errors."""


class LearnerNotFoundError(ProgressEngineError):
    def __init__(self, learner_id: str):
        self.learner_id = learner_id
        super().__init__(f"Learner not found: {learner_id}")


class ActivityNotFoundError(ProgressEngineError):
    def __init__(self, activity_id: str):
        self.activity_id = activity_id
        super().__init__(f"Activity not found: {activity_id}")
