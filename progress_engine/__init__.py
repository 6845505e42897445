"""
Progress Engine.

Recomputes module and competency proficiency from a learner's full attempt
history, advances the XP/level state machine and mints badges and
milestones idempotently, all inside one database transaction per attempt.
"""

__version__ = "1.0.0"
