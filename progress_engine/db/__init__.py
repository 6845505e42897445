"""
Database layer: models, engine/session plumbing and the progress store.
"""

from progress_engine.db.database import (
    build_engine,
    build_session_factory,
    get_engine,
    get_session_factory,
    init_db,
    reset_engine,
    session_scope,
)
from progress_engine.db.repository import ProgressRepository, ProgressStore

__all__ = [
    "ProgressRepository",
    "ProgressStore",
    "build_engine",
    "build_session_factory",
    "get_engine",
    "get_session_factory",
    "init_db",
    "reset_engine",
    "session_scope",
]
