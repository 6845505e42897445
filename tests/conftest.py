"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from progress_engine.db.database import build_engine, build_session_factory, init_db  # noqa: E402
from progress_engine.schemas import AttemptInput  # noqa: E402
from tests.fakes import InMemoryProgressStore  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (require database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


# ========================================
# In-memory store (unit tests)
# ========================================


@pytest.fixture
def store():
    """Fake store seeded with one standard, one module, one activity and one learner."""
    fake = InMemoryProgressStore()
    fake.add_standard("std-1", "EF01MA01", "Count objects up to 100")
    fake.add_module("mod-1", "counting", "Counting Adventures", standard_id="std-1")
    fake.add_activity("act-1", "mod-1", "std-1")
    fake.add_learner("learner-1", display_name="Ana")
    return fake


@pytest.fixture
def clock():
    """Strictly increasing submission timestamps."""
    state = {"now": datetime(2024, 3, 1, 9, 0, 0)}

    def tick() -> datetime:
        state["now"] += timedelta(minutes=1)
        return state["now"]

    return tick


@pytest.fixture
def make_attempt():
    """Factory for AttemptInput with sensible defaults."""

    def _make(success=True, learner_id="learner-1", activity_id="act-1", **fields):
        return AttemptInput(
            learner_id=learner_id, activity_id=activity_id, success=success, **fields
        )

    return _make


# ========================================
# SQLite (integration tests)
# ========================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database with every table created."""
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)
