"""
Transaction-scoped persistence handle for the progress engine.

The orchestrator and the summary projector only talk to a ProgressStore.
ProgressRepository implements it on top of one SQLAlchemy Session; the
caller owns the transaction (see session_scope()).

Reward issuance is an explicit insert-if-absent keyed by (learner_id, code):
    - PostgreSQL / SQLite: INSERT ... ON CONFLICT DO NOTHING
    - anything else: SAVEPOINT + IntegrityError, re-checked against the key
"""

from __future__ import annotations

from typing import Protocol

from loguru import logger
from sqlalchemy import insert, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from progress_engine.db.models import (
    Activity,
    Attempt,
    CompetencyProgress,
    ContentModule,
    Learner,
    ModuleProgress,
    Reward,
)
from progress_engine.db.models.base import new_id

_ON_CONFLICT_INSERTS = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}


class ProgressStore(Protocol):
    """Persistence operations the engine needs inside one unit of work."""

    # Boundary lookups
    def get_learner(self, learner_id: str) -> Learner | None: ...

    def get_activity(self, activity_id: str) -> Activity | None: ...

    # Write path
    def lock_learner(self, learner_id: str) -> Learner | None: ...

    def add_attempt(self, attempt: Attempt) -> Attempt: ...

    def list_module_attempts(self, learner_id: str, module_id: str) -> list[Attempt]: ...

    def list_competency_attempts(
        self, learner_id: str, curriculum_standard_id: str
    ) -> list[Attempt]: ...

    def list_learner_attempts(self, learner_id: str) -> list[Attempt]: ...

    def get_module_progress(self, learner_id: str, module_id: str) -> ModuleProgress | None: ...

    def get_competency_progress(
        self, learner_id: str, curriculum_standard_id: str
    ) -> CompetencyProgress | None: ...

    def save_module_progress(self, progress: ModuleProgress) -> ModuleProgress: ...

    def save_competency_progress(self, progress: CompetencyProgress) -> CompetencyProgress: ...

    def save_learner(self, learner: Learner) -> Learner: ...

    def insert_reward_if_absent(self, reward: Reward) -> Reward | None: ...

    # Read path
    def list_module_progress(self, learner_id: str) -> list[ModuleProgress]: ...

    def list_competency_progress(self, learner_id: str) -> list[CompetencyProgress]: ...

    def list_rewards(self, learner_id: str, limit: int | None = None) -> list[Reward]: ...


class ProgressRepository:
    """SQLAlchemy-backed ProgressStore bound to a single session."""

    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # Boundary lookups
    # ------------------------------------------------------------------

    def get_learner(self, learner_id: str) -> Learner | None:
        return self.session.get(Learner, learner_id)

    def get_activity(self, activity_id: str) -> Activity | None:
        stmt = (
            select(Activity)
            .options(joinedload(Activity.module), joinedload(Activity.curriculum_standard))
            .where(Activity.id == activity_id)
        )
        return self.session.scalars(stmt).first()

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def lock_learner(self, learner_id: str) -> Learner | None:
        """
        Re-read the learner row under a row lock.

        This is the authoritative "before" snapshot for the rest of the
        transaction. SQLite ignores FOR UPDATE; its writer lock serialises instead.
        """
        stmt = (
            select(Learner)
            .where(Learner.id == learner_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.scalars(stmt).first()

    def add_attempt(self, attempt: Attempt) -> Attempt:
        self.session.add(attempt)
        self.session.flush()
        return attempt

    def list_module_attempts(self, learner_id: str, module_id: str) -> list[Attempt]:
        stmt = (
            select(Attempt)
            .join(Activity, Attempt.activity_id == Activity.id)
            .where(Attempt.learner_id == learner_id, Activity.module_id == module_id)
            .order_by(Attempt.submitted_at.asc())
        )
        return list(self.session.scalars(stmt))

    def list_competency_attempts(
        self, learner_id: str, curriculum_standard_id: str
    ) -> list[Attempt]:
        stmt = (
            select(Attempt)
            .join(Activity, Attempt.activity_id == Activity.id)
            .where(
                Attempt.learner_id == learner_id,
                Activity.curriculum_standard_id == curriculum_standard_id,
            )
            .order_by(Attempt.submitted_at.asc())
        )
        return list(self.session.scalars(stmt))

    def list_learner_attempts(self, learner_id: str) -> list[Attempt]:
        stmt = (
            select(Attempt)
            .options(joinedload(Attempt.activity))
            .where(Attempt.learner_id == learner_id)
            .order_by(Attempt.submitted_at.asc())
        )
        return list(self.session.scalars(stmt))

    def get_module_progress(self, learner_id: str, module_id: str) -> ModuleProgress | None:
        stmt = select(ModuleProgress).where(
            ModuleProgress.learner_id == learner_id,
            ModuleProgress.module_id == module_id,
        )
        return self.session.scalars(stmt).first()

    def get_competency_progress(
        self, learner_id: str, curriculum_standard_id: str
    ) -> CompetencyProgress | None:
        stmt = select(CompetencyProgress).where(
            CompetencyProgress.learner_id == learner_id,
            CompetencyProgress.curriculum_standard_id == curriculum_standard_id,
        )
        return self.session.scalars(stmt).first()

    def save_module_progress(self, progress: ModuleProgress) -> ModuleProgress:
        self.session.add(progress)
        self.session.flush()
        return progress

    def save_competency_progress(self, progress: CompetencyProgress) -> CompetencyProgress:
        self.session.add(progress)
        self.session.flush()
        return progress

    def save_learner(self, learner: Learner) -> Learner:
        self.session.add(learner)
        self.session.flush()
        return learner

    def insert_reward_if_absent(self, reward: Reward) -> Reward | None:
        """
        Mint `reward` unless (learner_id, code) already exists.

        Returns:
            The persisted Reward, or None when it was already unlocked
        """
        if reward.id is None:
            reward.id = new_id()

        dialect = self.session.get_bind().dialect.name
        insert_fn = _ON_CONFLICT_INSERTS.get(dialect)
        if insert_fn is not None:
            stmt = (
                insert_fn(Reward.__table__)
                .values(_reward_row(reward))
                .on_conflict_do_nothing(index_elements=["learner_id", "code"])
            )
            result = self.session.execute(stmt)
            if result.rowcount == 0:
                logger.debug(f"Reward {reward.code} already unlocked for {reward.learner_id}")
                return None
            return self.session.get(Reward, reward.id)

        return self._insert_reward_with_savepoint(reward)

    def _insert_reward_with_savepoint(self, reward: Reward) -> Reward | None:
        try:
            with self.session.begin_nested():
                self.session.execute(insert(Reward.__table__).values(_reward_row(reward)))
        except IntegrityError:
            if self._reward_exists(reward.learner_id, reward.code):
                logger.debug(f"Reward {reward.code} already unlocked for {reward.learner_id}")
                return None
            raise
        return self.session.get(Reward, reward.id)

    def _reward_exists(self, learner_id: str, code: str) -> bool:
        stmt = select(Reward.id).where(Reward.learner_id == learner_id, Reward.code == code)
        return self.session.scalars(stmt).first() is not None

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def list_module_progress(self, learner_id: str) -> list[ModuleProgress]:
        stmt = (
            select(ModuleProgress)
            .options(
                joinedload(ModuleProgress.module).joinedload(ContentModule.curriculum_standard)
            )
            .where(ModuleProgress.learner_id == learner_id)
            .order_by(ModuleProgress.last_activity_at.desc(), ModuleProgress.updated_at.desc())
        )
        return list(self.session.scalars(stmt))

    def list_competency_progress(self, learner_id: str) -> list[CompetencyProgress]:
        stmt = (
            select(CompetencyProgress)
            .options(joinedload(CompetencyProgress.curriculum_standard))
            .where(CompetencyProgress.learner_id == learner_id)
            .order_by(CompetencyProgress.mastery.desc())
        )
        return list(self.session.scalars(stmt))

    def list_rewards(self, learner_id: str, limit: int | None = None) -> list[Reward]:
        stmt = (
            select(Reward)
            .where(Reward.learner_id == learner_id)
            .order_by(Reward.unlocked_at.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt))


def _reward_row(reward: Reward) -> dict:
    """Column-keyed values for a core INSERT (the JSON column is named "metadata")."""
    return {
        "id": reward.id,
        "learner_id": reward.learner_id,
        "code": reward.code,
        "title": reward.title,
        "description": reward.description,
        "criteria": reward.criteria,
        "icon": reward.icon,
        "category": reward.category,
        "rarity": reward.rarity,
        "xp_awarded": reward.xp_awarded,
        "level_achieved": reward.level_achieved,
        "metadata": reward.details,
        "unlocked_at": reward.unlocked_at,
    }
