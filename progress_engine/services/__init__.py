"""
Services: the stateful orchestrator and the read-only projections.

- progress_service: apply one attempt atomically, rebuild aggregates
- summary_service: learner summary, educator digest, reward list
"""

from progress_engine.services.progress_service import (
    ProgressService,
    ProgressUpdateResult,
    RebuildResult,
    log_attempt,
)
from progress_engine.services.summary_service import (
    get_educator_digest,
    get_progress_summary,
    list_rewards,
)

__all__ = [
    "ProgressService",
    "ProgressUpdateResult",
    "RebuildResult",
    "log_attempt",
    "get_educator_digest",
    "get_progress_summary",
    "list_rewards",
]
