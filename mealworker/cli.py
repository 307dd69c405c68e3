"""CLI entry-point: run the worker, preview calorie targets."""

import logging
import signal
from datetime import date

import typer
from rich.console import Console
from rich.table import Table

from mealworker.calories import DEFAULT_CALORIE_GOAL, compute_daily_calorie_targets
from mealworker.config import Settings, get_settings
from mealworker.errors import ConfigurationError
from mealworker.images import UnsplashImageSearch
from mealworker.jobs.models import MEAL_PLAN_GENERATION, CheatDay
from mealworker.jobs.source import get_job_source
from mealworker.llm import get_provider
from mealworker.pipeline import MealPlanPipeline
from mealworker.store.postgres import (
    PgConnection,
    PostgresMealPlanStore,
    PostgresNotificationDispatcher,
    PostgresProfileStore,
)
from mealworker.worker import JobProcessor

app = typer.Typer(help="Meal plan generation worker")

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
    )


def build_processor(settings: Settings, conn: PgConnection) -> JobProcessor:
    """Wire the Postgres stores, LLM provider and image search into a job processor."""
    llm = get_provider(settings.llm_provider, api_key=settings.llm_api_key, model=settings.llm_model)
    image_search = None
    if settings.unsplash_access_key:
        image_search = UnsplashImageSearch(
            settings.unsplash_access_key, timeout=settings.image_search_timeout_s
        )
    else:
        logger.warning("UNSPLASH_ACCESS_KEY is not set; meals will use default images")
    pipeline = MealPlanPipeline(
        llm,
        profile_store=PostgresProfileStore(conn),
        artifact_store=PostgresMealPlanStore(conn),
        notifier=PostgresNotificationDispatcher(conn),
        image_search=image_search,
    )
    return JobProcessor.from_settings(
        settings, get_job_source(conn=conn), {MEAL_PLAN_GENERATION: pipeline}
    )


@app.command()
def run(
    max_jobs: int = typer.Option(None, "--max-jobs", help="Override MAX_CONCURRENT_JOBS"),
):
    """Claim and process meal plan jobs until interrupted (SIGINT/SIGTERM drains in-flight jobs)."""
    console = Console()
    settings = get_settings()
    if max_jobs is not None:
        if max_jobs < 1:
            console.print("[red]Error: --max-jobs must be at least 1[/red]")
            raise typer.Exit(1)
        settings.max_concurrent_jobs = max_jobs
    configure_logging(settings.log_level)

    try:
        settings.require_credentials()
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    conn = PgConnection(settings.database_url)
    try:
        processor = build_processor(settings, conn)
    except Exception as e:
        console.print(f"[red]Error: worker startup failed: {e}[/red]")
        conn.close()
        raise typer.Exit(1)

    signal.signal(signal.SIGINT, processor.request_shutdown)
    signal.signal(signal.SIGTERM, processor.request_shutdown)
    console.print(f"Worker [bold]{settings.worker_id}[/bold] listening for {MEAL_PLAN_GENERATION} jobs")
    try:
        processor.run()
    finally:
        conn.close()
    console.print("[green]Stopped.[/green]")


def _parse_cheat_day(value: str) -> CheatDay:
    day, sep, kcal = value.partition("=")
    if not sep:
        raise ValueError(f"expected YYYY-MM-DD=KCAL, got {value!r}")
    return CheatDay(date=date.fromisoformat(day.strip()), calories=int(kcal.strip()))


@app.command()
def calories(
    goal: int = typer.Option(DEFAULT_CALORIE_GOAL, help="Daily calorie goal"),
    cheat_day: list[str] = typer.Option(default=[], help="Cheat day as YYYY-MM-DD=KCAL (repeatable)"),
    start: str = typer.Option(None, help="First plan date YYYY-MM-DD (default today)"),
):
    """Print the seven-day calorie targets a plan would be generated with."""
    console = Console()
    try:
        cheat_days = [_parse_cheat_day(v) for v in cheat_day]
        start_date = date.fromisoformat(start) if start else None
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    targets = compute_daily_calorie_targets(goal, cheat_days, start=start_date)
    table = Table(title=f"Calorie targets (goal {goal} kcal/day)")
    table.add_column("Date")
    table.add_column("Day")
    table.add_column("Calories", justify="right")
    table.add_column("Cheat day")
    for t in targets:
        table.add_row(
            t.date.isoformat(),
            t.date.strftime("%A"),
            str(t.calories),
            "yes" if t.is_cheat_day else "",
        )
    console.print(table)
    console.print(f"Weekly total: {sum(t.calories for t in targets)} kcal")


if __name__ == "__main__":
    app()
