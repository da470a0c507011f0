"""Pydantic models used across the jobbank-crawler configuration flow."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class EngineKind(str, Enum):
    """Engines able to render a listing page."""

    BROWSER = "browser"
    HTTP = "http"


class ListingSelectors(BaseModel):
    """CSS selectors describing one listing page; configuration, not design."""

    record_container: str = 'article[id^="article-"]'
    results_summary: str = ".results-summary"
    title_link: str = 'a[href*="/jobposting/"]'
    title: str = 'span.no-wrap[property="title"]'
    employer: str = "li.employer"
    location: str = "li.location"
    salary: str = "li.salary"
    date: str = ".date"
    lmia_flag: str = ".jobLMIAflag"


class ListingConfig(BaseModel):
    """Where the catalog lives and how it is paged."""

    base_url: str = "https://www.jobbank.gc.ca"
    url_template: str = (
        "https://www.jobbank.gc.ca/jobsearch/jobsearch?fsrc=32&page={page}&sort=M"
    )
    page_size: int = 25
    selectors: ListingSelectors = Field(default_factory=ListingSelectors)

    @field_validator("url_template")
    @classmethod
    def _require_page_placeholder(cls, value: str) -> str:
        if "{page}" not in value:
            raise ValueError("url_template must contain a {page} placeholder")
        return value

    @field_validator("page_size")
    @classmethod
    def _positive_page_size(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("page_size must be > 0")
        return value

    def page_url(self, page: int) -> str:
        return self.url_template.format(page=page)


class BrowserConfig(BaseModel):
    """Engine session behaviour; timeouts are in seconds."""

    engine: EngineKind = EngineKind.BROWSER
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    viewport: tuple[int, int] = (1920, 1080)
    page_timeout: float = 60.0
    count_timeout: float = 30.0
    count_settle: float = 3.0
    settle_delay: float = 1.0

    @field_validator("viewport", mode="before")
    @classmethod
    def _coerce_viewport(cls, value: Any) -> tuple[int, int]:
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return (int(value[0]), int(value[1]))
        raise ValueError("viewport expects two items [width, height]")

    @model_validator(mode="after")
    def _validate_timings(self) -> "BrowserConfig":
        if self.page_timeout <= 0 or self.count_timeout <= 0:
            raise ValueError("timeouts must be > 0")
        if self.settle_delay < 0 or self.count_settle < 0:
            raise ValueError("settle delays must be >= 0")
        return self


class WorkerPoolConfig(BaseModel):
    """Fan-out sizing, pacing and retry policy."""

    workers: int | None = Field(
        default=None,
        description="Explicit worker count; None derives it from the CPU count.",
    )
    stagger: float = 0.5
    max_attempts: int = 2
    backoff: float = 2.0
    page_delay: float = 1.0
    run_deadline: float = 30 * 60.0

    @model_validator(mode="after")
    def _validate_policy(self) -> "WorkerPoolConfig":
        if self.workers is not None and self.workers < 1:
            raise ValueError("workers must be >= 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        for name in ("stagger", "backoff", "page_delay"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if self.run_deadline <= 0:
            raise ValueError("run_deadline must be > 0")
        return self


class PersistenceConfig(BaseModel):
    """Job store location and write cadence."""

    database_path: Path = Field(default=Path("data/jobbank.db"))
    batch_size: int = 100
    progress_interval: int = 10

    @field_validator("database_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    @model_validator(mode="after")
    def _validate_sizes(self) -> "PersistenceConfig":
        if self.batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        if self.progress_interval <= 0:
            raise ValueError("progress_interval must be > 0")
        return self

    def resolved_database_path(self, base_dir: Path) -> Path:
        """Return the database path relative to the project root."""

        if not self.database_path.is_absolute():
            return (base_dir / self.database_path).resolve()
        return self.database_path


class ScheduleConfig(BaseModel):
    """Daily trigger for unattended runs."""

    cron: str = "0 0 * * *"
    timezone: str = "UTC"
    job_type: str = "lmia_scraper"
    catch_up: bool = True

    @field_validator("cron")
    @classmethod
    def _five_fields(cls, value: str) -> str:
        if len(value.split()) != 5:
            raise ValueError("cron expression must have five fields")
        return value


class CrawlerConfig(BaseModel):
    """Top level configuration document."""

    listing: ListingConfig = Field(default_factory=ListingConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    pool: WorkerPoolConfig = Field(default_factory=WorkerPoolConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    enable_progress_bar: bool = True


__all__ = [
    "BrowserConfig",
    "CrawlerConfig",
    "DEFAULT_USER_AGENT",
    "EngineKind",
    "ListingConfig",
    "ListingSelectors",
    "PersistenceConfig",
    "ScheduleConfig",
    "WorkerPoolConfig",
]
