from __future__ import annotations

import pytest
from typer.testing import CliRunner

from jobbank_crawler.app import AppState, app
from jobbank_crawler.models import RunStatus


@pytest.fixture
def cli_state(monkeypatch, temp_config_repository, fast_config, memory_store) -> AppState:
    state = AppState(repository=temp_config_repository, config=fast_config(), store=memory_store)
    monkeypatch.setattr("jobbank_crawler.app.build_state", lambda verbose: state)
    return state


@pytest.fixture
def use_engine(monkeypatch):
    def _install(engine):
        monkeypatch.setattr("jobbank_crawler.app.build_engine", lambda config, kind=None: engine)
        return engine

    return _install


def test_cli_scrape_prints_summary_and_samples(cli_state, use_engine, make_engine, listing_factory) -> None:
    engine = use_engine(
        make_engine(
            count_text="60 results",
            pages={1: [listing_factory(1, 25)], 2: [listing_factory(2, 25)], 3: [listing_factory(3, 10)]},
        )
    )

    result = CliRunner().invoke(app, ["scrape"])

    assert result.exit_code == 0, result.stdout
    assert "Scrape summary" in result.stdout
    assert "completed" in result.stdout
    assert "Sample jobs" in result.stdout
    assert "Top employers" in result.stdout
    assert cli_state.store.count_records() == 60
    assert sorted(engine.calls) == [1, 2, 3]


def test_cli_scrape_respects_page_limit(cli_state, use_engine, make_engine, listing_factory) -> None:
    engine = use_engine(
        make_engine(count_text="60 results", pages={1: [listing_factory(1, 25)], 2: [listing_factory(2, 25)]})
    )

    result = CliRunner().invoke(app, ["scrape", "--pages", "1", "--quiet"])

    assert result.exit_code == 0, result.stdout
    assert sorted(engine.calls) == [1]
    assert "Sample jobs" not in result.stdout


def test_cli_scrape_failure_exits_non_zero(cli_state, use_engine, make_engine) -> None:
    use_engine(make_engine(count_text="Nothing to see"))

    result = CliRunner().invoke(app, ["scrape", "--quiet"])

    assert result.exit_code == 1
    assert "failed" in result.stdout
    assert cli_state.store.latest_run().status is RunStatus.FAILED


@pytest.mark.parametrize("pages", ["0", "-5"])
def test_cli_scrape_rejects_invalid_page_limit(cli_state, pages: str) -> None:
    result = CliRunner().invoke(app, ["scrape", "--pages", pages])
    assert result.exit_code == 2


def test_cli_dry_run_leaves_store_untouched(cli_state, use_engine, make_engine, listing_factory) -> None:
    use_engine(make_engine(count_text="4 results", pages={1: [listing_factory(1, 4)]}))

    result = CliRunner().invoke(app, ["scrape", "--dry-run"])

    assert result.exit_code == 0, result.stdout
    assert "Dry run" in result.stdout
    assert "dry run" in result.stdout
    assert cli_state.store.count_records() == 0
    assert cli_state.store.latest_run() is None


def test_cli_runs_commands(cli_state) -> None:
    runner = CliRunner()
    empty = runner.invoke(app, ["runs", "latest"])
    assert empty.exit_code == 0
    assert "No scraping runs" in empty.stdout

    run = cli_state.store.create_run()
    cli_state.store.update_completed(run.id, 2, 40, 40)
    latest = runner.invoke(app, ["runs", "latest"])
    assert latest.exit_code == 0, latest.stdout
    assert "Scraping runs" in latest.stdout

    shown = runner.invoke(app, ["runs", "show", run.id])
    assert shown.exit_code == 0, shown.stdout

    missing = runner.invoke(app, ["runs", "show", "nope"])
    assert missing.exit_code == 1
    assert "Run not found" in missing.stdout

    jobs = runner.invoke(app, ["runs", "jobs", run.id])
    assert jobs.exit_code == 0
    assert "No postings stored" in jobs.stdout


def test_cli_config_init_and_show(cli_state) -> None:
    runner = CliRunner()
    first = runner.invoke(app, ["config", "init"])
    assert first.exit_code == 0, first.stdout
    assert cli_state.repository.locator.config_path().exists()

    again = runner.invoke(app, ["config", "init"])
    assert again.exit_code == 1
    assert "--force" in again.stdout

    forced = runner.invoke(app, ["config", "init", "--force"])
    assert forced.exit_code == 0

    shown = runner.invoke(app, ["config", "show"])
    assert shown.exit_code == 0
    assert "url_template" in shown.stdout


def test_cli_schedule_status(cli_state) -> None:
    result = CliRunner().invoke(app, ["schedule", "status"])
    assert result.exit_code == 0, result.stdout
    assert "never" in result.stdout
    assert "lmia_scraper" in result.stdout


def test_cli_log_show_without_entries(cli_state) -> None:
    result = CliRunner().invoke(app, ["log", "show", "--run", "unknown"])
    assert result.exit_code == 0
    assert "No log entries" in result.stdout
