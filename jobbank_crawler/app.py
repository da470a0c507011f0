"""Typer CLI entrypoint for jobbank-crawler."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional, Sequence

import typer
import yaml
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, CrawlerConfig, EngineKind
from .engine import build_engine
from .infra import JobStore, MemoryJobStore, SQLiteJobStore
from .logging_conf import available_run_logs, configure_logging, default_log_dir, run_log_path, tail_log
from .models import JobRecord, RunStatus, RunSummary, ScrapingRun
from .orchestrator import ScrapeOrchestrator
from .scheduler import APSchedulerAdapter

app = typer.Typer(
    help="Job Bank TFW postings crawler",
    no_args_is_help=True,
    rich_markup_mode=None,
)
runs_app = typer.Typer(name="runs", help="Inspect scraping runs", no_args_is_help=True, rich_markup_mode=None)
schedule_app = typer.Typer(
    name="schedule", help="Daily scheduled scraping", no_args_is_help=True, rich_markup_mode=None
)
config_app = typer.Typer(name="config", help="Configuration helpers", no_args_is_help=True, rich_markup_mode=None)
log_app = typer.Typer(name="log", help="Log viewing commands", no_args_is_help=True, rich_markup_mode=None)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    config: CrawlerConfig
    store: JobStore
    verbose: bool = False


def build_state(verbose: bool) -> AppState:
    repository = ConfigRepository()
    config = repository.load()
    configure_logging(verbose=verbose)
    store = SQLiteJobStore(repository.database_path(config))
    return AppState(repository=repository, config=config, store=store, verbose=verbose)


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def build_orchestrator(
    state: AppState,
    store: JobStore,
    *,
    max_pages: int | None = None,
    workers: int | None = None,
    engine: EngineKind | None = None,
    progress_enabled: bool = True,
    dry_run: bool = False,
) -> ScrapeOrchestrator:
    return ScrapeOrchestrator(
        state.config,
        store,
        build_engine(state.config, engine),
        max_pages=max_pages,
        workers=workers,
        progress_enabled=progress_enabled,
        dry_run=dry_run,
        verbose=state.verbose,
    )


def _format_money(record: JobRecord) -> str:
    if record.salary_min is None or record.salary_max is None:
        return record.salary_raw or "-"
    text = f"${record.salary_min:,.2f}"
    if record.salary_max != record.salary_min:
        text += f" - ${record.salary_max:,.2f}"
    if record.salary_type:
        text += f" ({record.salary_type})"
    return text


def _render_summary_table(summary: RunSummary) -> Table:
    title = "Scrape summary" + (" · dry run" if summary.dry_run else "")
    table = Table(title=title, box=box.SIMPLE_HEAD, show_header=False)
    table.add_column("field", style="cyan", no_wrap=True)
    table.add_column("value")
    status_style = "green" if summary.status is RunStatus.COMPLETED else "red"
    table.add_row("Run ID", summary.run_id or "-")
    table.add_row("Status", f"[{status_style}]{summary.status.value}[/{status_style}]")
    table.add_row("Pages", str(summary.total_pages))
    table.add_row("Jobs found", str(summary.jobs_scraped))
    table.add_row("Jobs stored", str(summary.jobs_stored))
    table.add_row("Page errors", str(summary.errors))
    if summary.failed_pages:
        table.add_row("Failed pages", ", ".join(str(page) for page in summary.failed_pages))
    table.add_row("Success rate", f"{summary.success_rate:.1f}%")
    table.add_row("Duration", f"{summary.duration:.1f}s")
    if summary.error_message:
        table.add_row("Error", f"[red]{summary.error_message}[/red]")
    return table


def _render_run_table(runs: Sequence[ScrapingRun]) -> Table:
    table = Table(title="Scraping runs", box=box.SIMPLE_HEAD)
    table.add_column("Run ID", style="cyan", no_wrap=True)
    table.add_column("Status", style="magenta")
    table.add_column("Started", style="green")
    table.add_column("Completed", style="green")
    table.add_column("Pages", justify="right")
    table.add_column("Scraped", justify="right")
    table.add_column("Stored", justify="right")
    table.add_column("Last page", justify="right")
    table.add_column("Error", style="red", overflow="fold")
    for run in runs:
        table.add_row(
            run.id,
            run.status.value,
            run.started_at.strftime("%Y-%m-%d %H:%M:%S"),
            run.completed_at.strftime("%Y-%m-%d %H:%M:%S") if run.completed_at else "-",
            str(run.total_pages),
            str(run.jobs_scraped),
            str(run.jobs_stored),
            str(run.last_page_scraped),
            run.error_message or "",
        )
    return table


def _render_jobs_table(records: Sequence[JobRecord], title: str) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAD)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", overflow="fold")
    table.add_column("Employer", style="green", overflow="fold")
    table.add_column("Location", style="magenta")
    table.add_column("Salary", style="yellow")
    table.add_column("Posted")
    for record in records:
        table.add_row(
            record.job_bank_id or "-",
            record.title,
            record.employer,
            record.location,
            _format_money(record),
            record.posting_date.isoformat() if record.posting_date else "-",
        )
    return table


def _render_employers_table(employers: Sequence[tuple[str, int]]) -> Table:
    table = Table(title="Top employers", box=box.SIMPLE_HEAD)
    table.add_column("#", justify="right")
    table.add_column("Employer", style="green")
    table.add_column("Jobs", justify="right")
    for index, (employer, count) in enumerate(employers, start=1):
        table.add_row(str(index), employer, str(count))
    return table


app.add_typer(runs_app, name="runs")
app.add_typer(schedule_app, name="schedule")
app.add_typer(config_app, name="config")
app.add_typer(log_app, name="log")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging", is_flag=True),
) -> None:
    ctx.obj = build_state(verbose)


@app.command("scrape", help="Scrape TFW postings from Job Bank and store them.")
def scrape(
    ctx: typer.Context,
    pages: int = typer.Option(-1, "--pages", "-p", help="Maximum pages to scrape (-1 for all)."),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Scrape without writing to the database.", is_flag=True
    ),
    workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Override the worker count."),
    engine: Optional[EngineKind] = typer.Option(
        None, "--engine", case_sensitive=False, help="Rendering engine: browser or http."
    ),
    quiet: bool = typer.Option(False, "--quiet", help="Hide progress and samples.", is_flag=True),
) -> None:
    if pages == 0 or pages < -1:
        raise typer.BadParameter("--pages must be -1 (all pages) or a positive number")
    state = _get_state(ctx)
    store: JobStore = MemoryJobStore() if dry_run else state.store
    if dry_run:
        console.print("Dry run: postings are kept in memory and not saved.", style="yellow")

    orchestrator = build_orchestrator(
        state,
        store,
        max_pages=pages,
        workers=workers,
        engine=engine,
        progress_enabled=not quiet,
        dry_run=dry_run,
    )
    summary = orchestrator.run()
    console.print(_render_summary_table(summary))

    if not quiet and summary.run_id and summary.status is RunStatus.COMPLETED:
        sample = store.records_for_run(summary.run_id, limit=3)
        if sample:
            console.print(_render_jobs_table(sample, "Sample jobs"))
        employers = store.top_employers(5)
        if employers:
            console.print(_render_employers_table(employers))

    if summary.status is RunStatus.FAILED:
        raise typer.Exit(code=1)


@runs_app.command("latest", help="Show the most recent scraping run.")
def runs_latest(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    run = state.store.latest_run()
    if run is None:
        console.print("No scraping runs recorded yet.", style="dim")
        raise typer.Exit(code=0)
    console.print(_render_run_table([run]))


@runs_app.command("show", help="Show one scraping run.")
def runs_show(ctx: typer.Context, run_id: str = typer.Argument(..., help="Run identifier.")) -> None:
    state = _get_state(ctx)
    run = state.store.get_run(run_id)
    if run is None:
        console.print(f"Run not found: {run_id}", style="red")
        raise typer.Exit(code=1)
    console.print(_render_run_table([run]))


@runs_app.command("jobs", help="List postings stored by a run.")
def runs_jobs(
    ctx: typer.Context,
    run_id: str = typer.Argument(..., help="Run identifier."),
    limit: int = typer.Option(20, "--limit", min=1, help="Maximum rows to display."),
) -> None:
    state = _get_state(ctx)
    records = state.store.records_for_run(run_id, limit=limit)
    if not records:
        console.print(f"No postings stored for run {run_id}.", style="dim")
        raise typer.Exit(code=0)
    console.print(_render_jobs_table(records, f"Postings · run {run_id}"))


@schedule_app.command("start", help="Run the daily scrape in the foreground (Ctrl-C stops).")
def schedule_start(ctx: typer.Context) -> None:
    state = _get_state(ctx)

    def run_scrape() -> RunSummary:
        return build_orchestrator(state, state.store, progress_enabled=False).run()

    scheduler = APSchedulerAdapter(state.store, run_scrape, state.config.schedule)
    scheduler.start()
    console.print(
        f"Scheduler running · cron '{state.config.schedule.cron}' ({state.config.schedule.timezone})",
        style="green",
    )
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("Stopping scheduler…", style="yellow")
    finally:
        scheduler.shutdown()


@schedule_app.command("status", help="Show scheduler bookkeeping for the daily scrape.")
def schedule_status(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    job = state.store.get_scraper_job(state.config.schedule.job_type)
    table = Table(title=f"Scheduled job · {job.job_type}", box=box.SIMPLE_HEAD, show_header=False)
    table.add_column("field", style="cyan")
    table.add_column("value")
    table.add_row("Status", job.status)
    table.add_row("Last run", job.last_run_at.isoformat() if job.last_run_at else "never")
    table.add_row(
        "Next run", job.next_scheduled_run.isoformat() if job.next_scheduled_run else "-"
    )
    table.add_row("Due now", "yes" if job.should_run() else "no")
    table.add_row("Overdue", "yes" if job.is_overdue() else "no")
    console.print(table)


@config_app.command("show", help="Print the active configuration.")
def config_show(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    console.print(f"# {state.repository.locator.config_path()}", style="dim")
    console.print(
        yaml.safe_dump(state.config.model_dump(mode="json"), sort_keys=False, allow_unicode=True),
        markup=False,
        highlight=False,
    )


@config_app.command("init", help="Write the default configuration file.")
def config_init(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    path = state.repository.locator.config_path()
    if path.exists() and not force:
        console.print(f"Configuration already exists: {path} (use --force)", style="yellow")
        raise typer.Exit(code=1)
    state.repository.save(CrawlerConfig())
    console.print(f"Default configuration written to {path}", style="green")


@log_app.command("list", help="List per-run log files.")
def log_list() -> None:
    logs = list(available_run_logs())
    if not logs:
        console.print("No run logs yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("show", help="Show the tail of the crawler log or one run's log.")
def log_show(
    run_id: Optional[str] = typer.Option(None, "--run", help="Run identifier (default: global log)."),
    tail: int = typer.Option(100, "--tail", min=1, help="Number of lines to display."),
) -> None:
    path = run_log_path(run_id) if run_id else default_log_dir() / "crawler.log"
    lines = tail_log(path, tail)
    if not lines:
        console.print("No log entries yet.", style="dim")
        return
    console.print(f"{'Run log ' + run_id if run_id else 'Crawler log'} · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
