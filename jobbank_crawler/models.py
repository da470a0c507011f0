"""Domain types exchanged between the scraper stages and the job store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping

SCHEDULE_PERIOD = timedelta(hours=24)
OVERDUE_AFTER = timedelta(hours=25)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunStatus(str, Enum):
    """Lifecycle of a scraping run; only ``running`` may transition."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


@dataclass(slots=True)
class ScrapingRun:
    """Durable record of one end-to-end scrape."""

    id: str
    status: RunStatus = RunStatus.RUNNING
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    total_pages: int = 0
    jobs_scraped: int = 0
    jobs_stored: int = 0
    last_page_scraped: int = 0
    error_message: str | None = None


@dataclass(slots=True)
class RawListing:
    """Untrusted listing fields as returned by an engine's extraction step."""

    external_id: str = ""
    title: str = ""
    employer: str = ""
    location: str = ""
    salary_text: str = ""
    date_text: str = ""
    url: str = ""
    lmia_flag: str = ""

    # engine payload key -> attribute
    PAYLOAD_FIELDS = {
        "jobId": "external_id",
        "title": "title",
        "employer": "employer",
        "location": "location",
        "salaryText": "salary_text",
        "postedDate": "date_text",
        "url": "url",
        "lmiaFlag": "lmia_flag",
    }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RawListing":
        """Build a listing from a loosely typed mapping.

        Unknown keys are ignored and anything that is not a string becomes an
        empty value, so a malformed payload cannot leak into the records.
        """

        values: dict[str, str] = {}
        for key, attribute in cls.PAYLOAD_FIELDS.items():
            value = payload.get(key)
            values[attribute] = value.strip() if isinstance(value, str) else ""
        return cls(**values)


@dataclass(slots=True)
class JobRecord:
    """Normalised posting ready for upsert."""

    title: str
    employer: str
    location: str
    url: str
    scraping_run_id: str
    job_bank_id: str | None = None
    city: str | None = None
    province: str | None = None
    salary_raw: str | None = None
    salary_min: float | None = None
    salary_max: float | None = None
    salary_type: str | None = None
    posting_date: date | None = None
    is_tfw: bool = True
    has_lmia: bool = False

    @property
    def record_key(self) -> str:
        return self.job_bank_id or self.url


@dataclass(slots=True, frozen=True)
class PageJob:
    page: int
    run_id: str


@dataclass(slots=True, frozen=True)
class PageError:
    kind: str
    message: str


@dataclass(slots=True)
class PageResult:
    """Outcome of one page; exactly one is produced per PageJob."""

    page: int
    records: list[JobRecord] = field(default_factory=list)
    error: PageError | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class ScraperJob:
    """Scheduler bookkeeping for a recurring scrape."""

    job_type: str
    status: str = "pending"
    last_run_at: datetime | None = None
    next_scheduled_run: datetime | None = None

    def should_run(self, now: datetime | None = None) -> bool:
        if self.last_run_at is None:
            return True
        return (now or utcnow()) - self.last_run_at > SCHEDULE_PERIOD

    def is_overdue(self, now: datetime | None = None) -> bool:
        if self.last_run_at is None:
            return True
        return (now or utcnow()) - self.last_run_at > OVERDUE_AFTER


@dataclass(slots=True)
class RunSummary:
    """What a finished run reports back to its caller."""

    run_id: str | None
    status: RunStatus
    total_pages: int = 0
    jobs_scraped: int = 0
    jobs_stored: int = 0
    errors: int = 0
    failed_pages: list[int] = field(default_factory=list)
    error_message: str | None = None
    duration: float = 0.0
    dry_run: bool = False

    @property
    def success_rate(self) -> float:
        if self.jobs_scraped == 0:
            return 0.0
        return self.jobs_stored / self.jobs_scraped * 100


__all__ = [
    "JobRecord",
    "OVERDUE_AFTER",
    "PageError",
    "PageJob",
    "PageResult",
    "RawListing",
    "RunStatus",
    "RunSummary",
    "SCHEDULE_PERIOD",
    "ScraperJob",
    "ScrapingRun",
    "utcnow",
]
