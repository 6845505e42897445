"""
Typer CLI for the progress engine.

Commands:
    progress-engine db init                        - Create tables
    progress-engine catalog add-standard CODE TEXT - Register a curriculum standard
    progress-engine catalog add-module SLUG TITLE  - Register a content module
    progress-engine catalog add-activity SLUG ...  - Register an activity
    progress-engine learner add                    - Create a learner
    progress-engine attempt log LEARNER ACTIVITY   - Apply one attempt
    progress-engine progress summary LEARNER       - Learner dashboard summary
    progress-engine progress digest LEARNER        - Educator digest
    progress-engine progress rewards LEARNER       - All unlocked rewards
    progress-engine progress rebuild LEARNER       - Recompute aggregates from history
    progress-engine level XP                       - Level for an XP total

Usage:
    progress-engine db init
    progress-engine attempt log <learner> <activity> --success --score 90 --time 120
    progress-engine progress digest <learner> --json
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import NoReturn

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import IntegrityError

from progress_engine.core.leveling import compute_level_from_xp
from progress_engine.db.database import init_db, session_scope
from progress_engine.db.models import Activity, ContentModule, CurriculumStandard, Learner
from progress_engine.db.models.base import new_id
from progress_engine.db.repository import ProgressRepository
from progress_engine.exceptions import ProgressEngineError
from progress_engine.logging_config import configure_logging
from progress_engine.schemas import AttemptInput
from progress_engine.services.progress_service import ProgressService, log_attempt
from progress_engine.services.summary_service import (
    get_educator_digest,
    get_progress_summary,
    list_rewards,
)

app = typer.Typer(help="progress-engine CLI: attempts -> mastery -> XP -> rewards")
db_app = typer.Typer(help="Database management")
catalog_app = typer.Typer(help="Content catalog rows (normally owned by the content pipeline)")
learner_app = typer.Typer(help="Learner management")
attempt_app = typer.Typer(help="Attempt submission")
progress_app = typer.Typer(help="Progress projections and repair")

app.add_typer(db_app, name="db")
app.add_typer(catalog_app, name="catalog")
app.add_typer(learner_app, name="learner")
app.add_typer(attempt_app, name="attempt")
app.add_typer(progress_app, name="progress")

console = Console()


@app.callback()
def main_callback() -> None:
    """Learning progress, mastery and reward engine."""
    configure_logging()


def _fail(error: Exception | str) -> NoReturn:
    rprint(f"[red]✗[/red] {error}")
    raise typer.Exit(code=1)


def _parse_metadata(pairs: list[str] | None) -> dict[str, str] | None:
    if not pairs:
        return None
    metadata = {}
    for pair in pairs:
        key, separator, value = pair.partition("=")
        if not separator or not key:
            raise typer.BadParameter(f"Expected key=value, got {pair!r}", param_hint="--meta")
        metadata[key] = value
    return metadata


# ========================================
# Database
# ========================================


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    init_db()
    rprint("[green]✓[/green] Database initialized!")


# ========================================
# Catalog / learners
# ========================================


@catalog_app.command("add-standard")
def catalog_add_standard(
    code: str = typer.Argument(..., help="Curriculum code, e.g. EF01MA01"),
    competency: str = typer.Argument(..., help="Competency description"),
    standard_id: str | None = typer.Option(None, "--id", help="Explicit id"),
) -> None:
    """Register a curriculum standard."""
    try:
        with session_scope() as session:
            standard = CurriculumStandard(
                id=standard_id or new_id(), code=code, competency=competency
            )
            session.add(standard)
    except IntegrityError as e:
        _fail(f"Could not add standard {code}: {e.orig}")
    rprint(f"[green]✓[/green] Standard {code}: {standard.id}")


@catalog_app.command("add-module")
def catalog_add_module(
    slug: str = typer.Argument(...),
    title: str = typer.Argument(...),
    standard: str | None = typer.Option(None, "--standard", help="Curriculum standard id"),
    module_id: str | None = typer.Option(None, "--id", help="Explicit id"),
) -> None:
    """Register a content module."""
    try:
        with session_scope() as session:
            module = ContentModule(
                id=module_id or new_id(), slug=slug, title=title, curriculum_standard_id=standard
            )
            session.add(module)
    except IntegrityError as e:
        _fail(f"Could not add module {slug}: {e.orig}")
    rprint(f"[green]✓[/green] Module {slug}: {module.id}")


@catalog_app.command("add-activity")
def catalog_add_activity(
    slug: str = typer.Argument(...),
    title: str = typer.Argument(...),
    module: str = typer.Option(..., "--module", help="Content module id"),
    standard: str = typer.Option(..., "--standard", help="Curriculum standard id"),
    activity_id: str | None = typer.Option(None, "--id", help="Explicit id"),
) -> None:
    """Register an activity tagged with a module and a curriculum standard."""
    try:
        with session_scope() as session:
            activity = Activity(
                id=activity_id or new_id(),
                slug=slug,
                title=title,
                module_id=module,
                curriculum_standard_id=standard,
            )
            session.add(activity)
    except IntegrityError as e:
        _fail(f"Could not add activity {slug}: {e.orig}")
    rprint(f"[green]✓[/green] Activity {slug}: {activity.id}")


@learner_app.command("add")
def learner_add(
    name: str | None = typer.Option(None, "--name", help="Display name"),
    learner_id: str | None = typer.Option(None, "--id", help="Explicit id"),
) -> None:
    """Create a learner with an empty game state."""
    level_info = compute_level_from_xp(0)
    with session_scope() as session:
        learner = Learner(
            id=learner_id or new_id(),
            display_name=name,
            xp=0,
            level=level_info.level,
            next_level_at=level_info.next_level_at,
            current_streak=0,
            longest_streak=0,
        )
        session.add(learner)
    rprint(f"[green]✓[/green] Learner: {learner.id}")


# ========================================
# Attempts
# ========================================


@attempt_app.command("log")
def attempt_log(
    learner_id: str = typer.Argument(..., help="Learner id"),
    activity_id: str = typer.Argument(..., help="Activity id"),
    success: bool = typer.Option(..., "--success/--failure", help="Attempt outcome"),
    score: float | None = typer.Option(None, "--score", min=0, max=100),
    max_score: float | None = typer.Option(None, "--max-score", min=1, max=100),
    accuracy: float | None = typer.Option(None, "--accuracy", min=0, max=1),
    time_spent: float | None = typer.Option(None, "--time", min=0, help="Seconds spent"),
    meta: list[str] | None = typer.Option(None, "--meta", help="key=value metadata (repeatable)"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result as JSON"),
) -> None:
    """Apply one attempt and show what changed."""
    attempt_input = AttemptInput(
        learner_id=learner_id,
        activity_id=activity_id,
        success=success,
        score=score,
        max_score=max_score,
        accuracy=accuracy,
        time_spent_seconds=time_spent,
        metadata=_parse_metadata(meta),
    )

    try:
        with session_scope() as session:
            result = log_attempt(session, attempt_input, datetime.now(UTC))
            payload = result.to_dict()
    except ProgressEngineError as e:
        _fail(e)

    logger.info(f"Attempt {payload['attempt']['id']} applied (+{payload['xp_gained']} XP)")

    if as_json:
        console.print_json(data=payload)
        return

    module = payload["module_progress"]
    competency = payload["competency_progress"]
    learner = payload["learner"]

    table = Table(title="Progress Update")
    table.add_column("Scope", style="cyan")
    table.add_column("Completion", justify="right")
    table.add_column("Mastery", justify="right")
    table.add_column("Streak", justify="right")
    table.add_row(
        "Module",
        f"{module['completion']}% ({module['status']})",
        str(module["mastery"]),
        f"{module['current_streak']} / best {module['best_streak']}",
    )
    table.add_row(
        "Competency",
        "-",
        str(competency["mastery"]),
        f"{competency['current_streak']} / best {competency['best_streak']}",
    )
    console.print(table)

    rprint(
        f"XP [bold]+{payload['xp_gained']}[/bold] -> {learner['xp']} "
        f"(level {learner['level']}, next at {learner['next_level_at']})"
    )
    for reward in payload["rewards"]:
        rprint(f"[yellow]★[/yellow] {reward['code']} [dim]{reward['rarity']}[/dim] {reward['title']}")


# ========================================
# Projections
# ========================================


@progress_app.command("summary")
def progress_summary(
    learner_id: str = typer.Argument(..., help="Learner id"),
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
) -> None:
    """Show the learner dashboard summary."""
    try:
        with session_scope() as session:
            summary = get_progress_summary(ProgressRepository(session), learner_id)
    except ProgressEngineError as e:
        _fail(e)

    if as_json:
        console.print_json(summary.model_dump_json())
        return

    learner = summary.learner
    rprint(
        f"[bold]Level {learner.level}[/bold] - {learner.xp} XP "
        f"({learner.xp_progress_percent}% to {learner.next_level_at}), "
        f"streak {learner.current_streak} (longest {learner.longest_streak})"
    )

    table = Table(title="Modules")
    table.add_column("Module", style="cyan")
    table.add_column("Status")
    table.add_column("Completion", justify="right")
    table.add_column("Mastery", justify="right")
    for module in summary.modules:
        table.add_row(module.title, module.status, f"{module.completion}%", str(module.mastery))
    console.print(table)

    goals = Table(title="Upcoming Goals")
    goals.add_column("Goal", style="cyan")
    goals.add_column("Progress", justify="right")
    for goal in summary.upcoming_goals:
        goals.add_row(goal.title, f"{goal.progress:g} / {goal.target:g}")
    console.print(goals)


@progress_app.command("digest")
def progress_digest(
    learner_id: str = typer.Argument(..., help="Learner id"),
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
) -> None:
    """Show the educator digest."""
    try:
        with session_scope() as session:
            digest = get_educator_digest(ProgressRepository(session), learner_id)
    except ProgressEngineError as e:
        _fail(e)

    if as_json:
        console.print_json(digest.model_dump_json())
        return

    rprint(
        f"[bold]{digest.learner.display_name or digest.learner.id}[/bold] - "
        f"level {digest.learner.level}, mastery avg {digest.learner.mastery_average}, "
        f"{digest.learner.completed_modules} module(s) completed"
    )
    for strength in digest.strengths:
        rprint(f"[green]+[/green] {strength.code} {strength.competency} ({strength.mastery})")
    for area in digest.focus_areas:
        rprint(f"[red]![/red] {area.title} ({area.mastery}): {area.recommendation}")
    for recommendation in digest.recommendations:
        rprint(f"  • {recommendation}")


@progress_app.command("rewards")
def progress_rewards(
    learner_id: str = typer.Argument(..., help="Learner id"),
) -> None:
    """List every unlocked reward, newest first."""
    try:
        with session_scope() as session:
            rewards = list_rewards(ProgressRepository(session), learner_id)
    except ProgressEngineError as e:
        _fail(e)

    table = Table(title="Rewards")
    table.add_column("Code", style="cyan")
    table.add_column("Title")
    table.add_column("Rarity")
    table.add_column("XP", justify="right")
    for reward in rewards:
        table.add_row(reward.code, reward.title, reward.rarity, str(reward.xp_awarded))
    console.print(table)


@progress_app.command("rebuild")
def progress_rebuild(
    learner_id: str = typer.Argument(..., help="Learner id"),
) -> None:
    """Recompute module and competency aggregates from the attempt history."""
    try:
        with session_scope() as session:
            result = ProgressService(ProgressRepository(session)).rebuild_learner_progress(
                learner_id
            )
    except ProgressEngineError as e:
        _fail(e)

    rprint(
        f"[green]✓[/green] Rebuilt {result.modules} module(s) and "
        f"{result.competencies} competency row(s) from {result.attempts} attempt(s)"
    )


@app.command("level")
def level(xp: int = typer.Argument(..., min=0, help="Cumulative XP")) -> None:
    """Show the level for an XP total."""
    info = compute_level_from_xp(xp)
    rprint(f"Level {info.level} (next level at {info.next_level_at} XP)")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
