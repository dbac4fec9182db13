"""
Typer CLI for operating a SQL-backed stomachs engine.

Commands:
    stomachs db init                      - Create tables
    stomachs attach USER ITEM...          - Start tracking items for a learner
    stomachs due USER                     - List due items
    stomachs review USER ITEM OUTCOME     - Record a review outcome
    stomachs stats USER                   - Stage distribution and review summary

Usage:
    stomachs --help
    stomachs --database-url sqlite:///dev.db db init
    stomachs attach alice hund katze maus --package de-animals
    stomachs review alice hund correct
"""

from __future__ import annotations

from datetime import timezone

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from .config import get_settings
from .db.database import init_db, make_engine, make_session_factory
from .errors import StomachsError
from .history import HistoryRecorder, SqlHistorySink
from .log import configure_logging
from .models import VocabularyItem
from .policy import Stage, StagePolicy
from .scheduler import Scheduler
from .store.sql import SqlStateStore

app = typer.Typer(help="stomachs: 5 Cow Stomachs spaced repetition engine")
db_app = typer.Typer(help="Database management")
app.add_typer(db_app, name="db")

console = Console()


# ========================================
# Context Builder (Dependency Injection)
# ========================================


class CLIContext:
    """
    Lazily wires the engine from settings.

    Nothing touches the database until a command needs it.
    """

    def __init__(self, database_url: str | None = None):
        self.settings = get_settings()
        self.database_url = database_url or self.settings.database_url
        self._engine = None
        self._scheduler = None

    @property
    def engine(self):
        if self._engine is None:
            self._engine = make_engine(self.database_url, echo=self.settings.log_level == "DEBUG")
        return self._engine

    @property
    def scheduler(self) -> Scheduler:
        if self._scheduler is None:
            factory = make_session_factory(self.engine)
            self._scheduler = Scheduler.from_settings(
                self.settings,
                SqlStateStore(factory),
                recorder=HistoryRecorder(SqlHistorySink(factory)),
            )
        return self._scheduler


def _fail(error: Exception) -> None:
    rprint(f"[red]✗ {error}[/red]")
    raise typer.Exit(code=1)


@app.callback()
def main_callback(
    ctx: typer.Context,
    database_url: str = typer.Option(
        None, "--database-url", help="Override STOMACHS_DATABASE_URL"
    ),
    log_level: str = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
):
    """5 Cow Stomachs operator tool."""
    settings = get_settings()
    configure_logging((log_level or settings.log_level).upper())
    ctx.obj = CLIContext(database_url)


@db_app.command("init")
def db_init(ctx: typer.Context) -> None:
    """
    Initialize database tables.

    Safe to run multiple times (idempotent).
    """
    init_db(ctx.obj.engine)
    rprint("[green]✓[/green] Database initialized!")


@app.command("attach")
def attach(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="Learner id"),
    item_ids: list[str] = typer.Argument(..., help="Item ids to attach"),
    package_id: str = typer.Option("manual", "--package", "-p", help="Owning package id"),
) -> None:
    """Start tracking items for a learner (stage 0, due now)."""
    items = [VocabularyItem(item_id=i, package_id=package_id) for i in item_ids]
    try:
        states = ctx.obj.scheduler.attach_items(user_id, items)
    except StomachsError as e:
        _fail(e)
    rprint(f"[green]✓[/green] {len(states)} items tracked for {user_id}")


@app.command("due")
def due(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="Learner id"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum items to list"),
) -> None:
    """List items due now, oldest first."""
    scheduler: Scheduler = ctx.obj.scheduler
    try:
        item_ids = scheduler.get_due_items(user_id, limit=limit)
    except StomachsError as e:
        _fail(e)

    if not item_ids:
        rprint(f"[dim]Nothing due for {user_id}[/dim]")
        return

    table = Table(title=f"Due for {user_id}")
    table.add_column("Item", style="cyan")
    table.add_column("Stage", justify="right")
    table.add_column("Due since", style="dim")
    for item_id in item_ids:
        state = scheduler.get_state(user_id, item_id)
        table.add_row(item_id, Stage(state.stage).name, f"{state.due_at:%Y-%m-%d %H:%M}")
    console.print(table)


@app.command("review")
def review(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="Learner id"),
    item_id: str = typer.Argument(..., help="Reviewed item id"),
    outcome: str = typer.Argument(..., help="correct or incorrect"),
) -> None:
    """Record one review outcome."""
    try:
        state = ctx.obj.scheduler.record_outcome(user_id, item_id, outcome)
    except StomachsError as e:
        _fail(e)

    due_at = state.due_at.astimezone(timezone.utc)
    rprint(
        f"[green]✓[/green] {item_id}: stage {Stage(state.stage).name}, "
        f"next review {due_at:%Y-%m-%d %H:%M} UTC"
    )


@app.command("stats")
def stats(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="Learner id"),
) -> None:
    """Stage distribution and review summary for a learner."""
    scheduler: Scheduler = ctx.obj.scheduler
    try:
        distribution = scheduler.stage_distribution(user_id)
        summary = scheduler.review_summary(user_id)
    except StomachsError as e:
        _fail(e)
    policy: StagePolicy = scheduler.policy

    table = Table(title=f"Stomachs for {user_id}")
    table.add_column("Stage")
    table.add_column("Interval", justify="right")
    table.add_column("Items", justify="right", style="cyan")
    for stage, count in distribution.items():
        interval = "-" if stage is Stage.NEW else f"{policy.interval(stage).days}d"
        table.add_row(stage.name, interval, str(count))
    console.print(table)

    rprint(
        f"Reviews: {summary.total}  correct: {summary.correct}  "
        f"accuracy: {summary.accuracy:.0%}  graduations: {summary.graduations}  "
        f"lapses: {summary.lapses}"
    )


def run() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    run()
