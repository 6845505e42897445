"""
Integration tests for ProgressRepository on SQLite.

Covers the SQL side of the engine: ordering, insert-if-absent reward
issuance, the log_attempt boundary helper and whole-transaction rollback.

Usage:
    pytest tests/integration/test_progress_repository.py -v
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError

from progress_engine.db.database import build_engine, session_scope
from progress_engine.db.models import (
    Activity,
    Attempt,
    CompetencyProgress,
    ContentModule,
    CurriculumStandard,
    Learner,
    ModuleProgress,
    Reward,
)
from progress_engine.db.repository import ProgressRepository
from progress_engine.exceptions import ActivityNotFoundError, LearnerNotFoundError
from progress_engine.schemas import ActivityDescriptor, AttemptInput
from progress_engine.services.progress_service import ProgressService, log_attempt
from progress_engine.services.summary_service import get_progress_summary, list_rewards

pytestmark = pytest.mark.integration

START = datetime(2024, 3, 1, 9, 0, 0)


@pytest.fixture
def seeded(session_factory):
    """One standard, two modules (one activity each) and one learner."""
    with session_scope(session_factory) as session:
        session.add(CurriculumStandard(id="std-1", code="EF01MA01", competency="Count to 100"))
        session.add_all(
            [
                ContentModule(id="mod-1", slug="counting", title="Counting", curriculum_standard_id="std-1"),
                ContentModule(id="mod-2", slug="adding", title="Adding"),
            ]
        )
        session.add_all(
            [
                Activity(id="act-1", slug="count-apples", title="Count apples", module_id="mod-1", curriculum_standard_id="std-1"),
                Activity(id="act-2", slug="add-pears", title="Add pears", module_id="mod-2", curriculum_standard_id="std-1"),
            ]
        )
        session.add(
            Learner(
                id="learner-1",
                display_name="Ana",
                xp=0,
                level=1,
                next_level_at=1000,
                current_streak=0,
                longest_streak=0,
            )
        )
    return session_factory


def attempt_input(activity_id="act-1", success=True, **fields):
    return AttemptInput(learner_id="learner-1", activity_id=activity_id, success=success, **fields)


def count(session, model):
    return session.scalar(select(func.count()).select_from(model))


class TestLogAttempt:
    def test_full_flow_commits(self, seeded):
        with session_scope(seeded) as session:
            result = log_attempt(
                session,
                attempt_input(score=100, accuracy=1.0, time_spent_seconds=120, metadata={"device": "tablet"}),
                START,
            )
            payload = result.to_dict()

        assert payload["module_progress"]["completion"] == 100
        assert payload["module_progress"]["status"] == "COMPLETED"
        assert payload["learner"]["xp"] == 220
        assert [r["code"] for r in payload["rewards"]] == [
            "module:mod-1:completion",
            "competency:std-1:mastery80",
            "competency:std-1:mastery95",
        ]

        with session_scope(seeded) as session:
            assert count(session, Attempt) == 1
            assert count(session, Reward) == 3
            attempt = session.scalars(select(Attempt)).one()
            assert attempt.attempt_metadata == {"device": "tablet"}
            learner = session.get(Learner, "learner-1")
            assert learner.xp == 220
            assert learner.current_streak == 1

    def test_competency_spans_modules(self, seeded):
        with session_scope(seeded) as session:
            log_attempt(session, attempt_input("act-1", score=80), START)
            result = log_attempt(
                session, attempt_input("act-2", success=False, score=20), START + timedelta(minutes=1)
            )

            assert result.module_progress.module_id == "mod-2"
            assert result.module_progress.total_attempts == 1
            assert result.competency_progress.attempts_count == 2

        with session_scope(seeded) as session:
            assert count(session, ModuleProgress) == 2
            assert count(session, CompetencyProgress) == 1

    def test_unknown_learner(self, seeded):
        with pytest.raises(LearnerNotFoundError):
            with session_scope(seeded) as session:
                log_attempt(session, AttemptInput(learner_id="ghost", activity_id="act-1", success=True))

        with session_scope(seeded) as session:
            assert count(session, Attempt) == 0

    def test_unknown_activity(self, seeded):
        with pytest.raises(ActivityNotFoundError) as exc_info:
            with session_scope(seeded) as session:
                log_attempt(session, attempt_input("missing"))

        assert exc_info.value.activity_id == "missing"


class TestRepositoryQueries:
    def test_histories_ordered_by_submission(self, seeded):
        with session_scope(seeded) as session:
            repository = ProgressRepository(session)
            for offset, activity_id in [(3, "act-1"), (1, "act-2"), (2, "act-1")]:
                session.add(
                    Attempt(
                        learner_id="learner-1",
                        activity_id=activity_id,
                        success=True,
                        submitted_at=START + timedelta(minutes=offset),
                    )
                )
            session.flush()

            module_history = repository.list_module_attempts("learner-1", "mod-1")
            competency_history = repository.list_competency_attempts("learner-1", "std-1")
            everything = repository.list_learner_attempts("learner-1")

            assert [a.submitted_at.minute for a in module_history] == [2, 3]
            assert [a.submitted_at.minute for a in competency_history] == [1, 2, 3]
            assert [a.activity.module_id for a in everything] == ["mod-2", "mod-1", "mod-1"]

    def test_lock_learner_returns_row(self, seeded):
        with session_scope(seeded) as session:
            repository = ProgressRepository(session)
            assert repository.lock_learner("learner-1").display_name == "Ana"
            assert repository.lock_learner("ghost") is None


class TestInsertRewardIfAbsent:
    def make_reward(self, code="level:2"):
        return Reward(
            learner_id="learner-1",
            code=code,
            title="Level 2 unlocked",
            category="LEVEL",
            rarity="EPIC",
            xp_awarded=0,
            level_achieved=2,
            details={"kind": "level_up", "xp_total": 1100, "xp_gained": 200},
            unlocked_at=START,
        )

    def test_second_insert_is_skipped(self, seeded):
        with session_scope(seeded) as session:
            repository = ProgressRepository(session)
            first = repository.insert_reward_if_absent(self.make_reward())
            second = repository.insert_reward_if_absent(self.make_reward())

            assert first is not None
            assert first.details == {"kind": "level_up", "xp_total": 1100, "xp_gained": 200}
            assert second is None

        with session_scope(seeded) as session:
            assert count(session, Reward) == 1

    def test_skip_does_not_poison_transaction(self, seeded):
        with session_scope(seeded) as session:
            repository = ProgressRepository(session)
            repository.insert_reward_if_absent(self.make_reward())
            repository.insert_reward_if_absent(self.make_reward())
            repository.insert_reward_if_absent(self.make_reward("xp:1000"))

        with session_scope(seeded) as session:
            codes = {r.code for r in ProgressRepository(session).list_rewards("learner-1")}
            assert codes == {"level:2", "xp:1000"}

    def test_idempotent_across_attempts(self, seeded):
        with session_scope(seeded) as session:
            log_attempt(session, attempt_input(score=100), START)
        with session_scope(seeded) as session:
            result = log_attempt(session, attempt_input(score=100), START + timedelta(minutes=1))
            assert result.rewards == []

        with session_scope(seeded) as session:
            stmt = select(func.count()).where(Reward.code == "module:mod-1:completion")
            assert session.scalar(stmt) == 1


class FailingRepository(ProgressRepository):
    """Blows up after the attempt and both aggregates are already flushed."""

    def save_learner(self, learner):
        raise RuntimeError("learner write failed")


class TestRollback:
    def test_failure_rolls_back_every_write(self, seeded):
        with session_scope(seeded) as session:
            descriptor = ActivityDescriptor.from_model(ProgressRepository(session).get_activity("act-1"))

        with pytest.raises(RuntimeError, match="learner write failed"):
            with session_scope(seeded) as session:
                ProgressService(FailingRepository(session)).apply_attempt(
                    descriptor, attempt_input(score=100), START
                )

        with session_scope(seeded) as session:
            assert count(session, Attempt) == 0
            assert count(session, ModuleProgress) == 0
            assert count(session, CompetencyProgress) == 0
            assert count(session, Reward) == 0
            assert session.get(Learner, "learner-1").xp == 0


class TestProjections:
    def test_summary_and_rebuild(self, seeded):
        with session_scope(seeded) as session:
            for minute, success in enumerate([True, True, False]):
                log_attempt(session, attempt_input(success=success, score=70), START + timedelta(minutes=minute))

        with session_scope(seeded) as session:
            summary = get_progress_summary(ProgressRepository(session), "learner-1")
            rewards_before = list_rewards(ProgressRepository(session), "learner-1")

        module = summary.modules[0]
        assert module.curriculum_code == "EF01MA01"
        assert module.best_streak == 2
        assert module.current_streak == 0
        assert summary.competencies[0].attempts_count == 3

        with session_scope(seeded) as session:
            progress = session.scalars(select(ModuleProgress)).one()
            progress.mastery = 0
            progress.completion = 0

        with session_scope(seeded) as session:
            result = ProgressService(ProgressRepository(session)).rebuild_learner_progress("learner-1")
            assert result.attempts == 3

        with session_scope(seeded) as session:
            rebuilt = get_progress_summary(ProgressRepository(session), "learner-1").modules[0]
            assert rebuilt.mastery == module.mastery
            assert rebuilt.completion == module.completion
            assert len(list_rewards(ProgressRepository(session), "learner-1")) == len(rewards_before)


class TestModuleOrdering:
    def test_most_recent_module_first(self, seeded):
        """Rows are ordered by the last attempt, not by the server-side update clock."""
        with session_scope(seeded) as session:
            log_attempt(session, attempt_input("act-1", score=60), START)
        with session_scope(seeded) as session:
            log_attempt(session, attempt_input("act-2", score=40), START + timedelta(minutes=5))

        with session_scope(seeded) as session:
            summary = get_progress_summary(ProgressRepository(session), "learner-1")

        assert [m.id for m in summary.modules] == ["mod-2", "mod-1"]

    def test_same_transaction_follows_submission_time(self, seeded):
        with session_scope(seeded) as session:
            log_attempt(session, attempt_input("act-2", score=40), START)
            log_attempt(session, attempt_input("act-1", score=60), START + timedelta(seconds=1))
            log_attempt(session, attempt_input("act-2", score=50), START + timedelta(seconds=2))

        with session_scope(seeded) as session:
            modules = ProgressRepository(session).list_module_progress("learner-1")
            assert [row.module_id for row in modules] == ["mod-2", "mod-1"]


class TestSQLiteEngine:
    @pytest.mark.parametrize("isolation_level", ["READ COMMITTED", "REPEATABLE READ"])
    def test_unsupported_isolation_level_falls_back(self, isolation_level):
        engine = build_engine("sqlite://", isolation_level=isolation_level)
        try:
            with engine.connect() as connection:
                assert connection.exec_driver_sql("SELECT 1").scalar() == 1
        finally:
            engine.dispose()

    def test_serializable_is_kept(self):
        engine = build_engine("sqlite://", isolation_level="SERIALIZABLE")
        try:
            with engine.connect() as connection:
                assert connection.get_isolation_level() == "SERIALIZABLE"
        finally:
            engine.dispose()

    def test_foreign_keys_enforced(self, seeded):
        with session_scope(seeded) as session:
            assert session.execute(text("PRAGMA foreign_keys")).scalar() == 1

        with pytest.raises(IntegrityError):
            with session_scope(seeded) as session:
                session.add(
                    Activity(
                        id="act-orphan",
                        slug="orphan",
                        title="Orphan",
                        module_id="no-such-module",
                        curriculum_standard_id="std-1",
                    )
                )

        with session_scope(seeded) as session:
            assert session.get(Activity, "act-orphan") is None
