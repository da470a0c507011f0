"""APScheduler wrapper running the daily scrape and catching up missed runs."""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from ..config import ScheduleConfig
from ..infra import JobStore
from ..logging_conf import configure_logging
from ..models import SCHEDULE_PERIOD, RunStatus, RunSummary, utcnow

DAILY_JOB_ID = "scrape::daily"
CATCH_UP_JOB_ID = "scrape::catch-up"


class APSchedulerAdapter:
    """Schedule the recurring scrape and keep its bookkeeping row current."""

    def __init__(
        self,
        store: JobStore,
        run_scrape: Callable[[], RunSummary],
        schedule: ScheduleConfig | None = None,
        scheduler: BaseScheduler | None = None,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.run_scrape = run_scrape
        self.schedule = schedule or ScheduleConfig()
        self.scheduler = scheduler or BackgroundScheduler(timezone=self.schedule.timezone)
        self.logger = configure_logging().bind(
            component="scheduler", job_type=self.schedule.job_type
        )
        self.started = False
        self._now = now

    def start(self) -> None:
        if self.started:
            return
        if self.schedule.catch_up:
            self.check_missed_execution()
        self.schedule_daily()
        self.scheduler.start()
        self.started = True
        self.logger.info("apscheduler_started", cron=self.schedule.cron)

    def shutdown(self) -> None:
        if self.started:
            self.scheduler.shutdown(wait=False)
            self.started = False
            self.logger.info("apscheduler_stopped")

    def schedule_daily(self) -> None:
        trigger = CronTrigger.from_crontab(self.schedule.cron, timezone=self.schedule.timezone)
        self.scheduler.add_job(
            self.run_scheduled,
            trigger=trigger,
            id=DAILY_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.logger.info("job_scheduled", cron=self.schedule.cron, timezone=self.schedule.timezone)

    def check_missed_execution(self) -> bool:
        """Queue an immediate run when the last one is older than a day."""

        job = self.store.get_scraper_job(self.schedule.job_type)
        now = self._now()
        if not job.should_run(now):
            self.logger.info(
                "scrape_not_due",
                last_run_at=job.last_run_at.isoformat() if job.last_run_at else None,
                due_at=(job.last_run_at + SCHEDULE_PERIOD).isoformat() if job.last_run_at else None,
            )
            return False
        self.logger.info("scrape_catch_up", overdue=job.is_overdue(now))
        self.scheduler.add_job(
            self.run_scheduled,
            trigger=DateTrigger(run_date=now),
            id=CATCH_UP_JOB_ID,
            replace_existing=True,
            misfire_grace_time=None,
        )
        return True

    def run_scheduled(self) -> RunSummary | None:
        job_type = self.schedule.job_type
        self.logger.info("scheduled_scrape_started")
        self.store.mark_scraper_job(job_type, "running")
        try:
            summary = self.run_scrape()
        except Exception:  # noqa: BLE001 - keep the scheduler alive, record the failure
            self.logger.exception("scheduled_scrape_crashed")
            self.store.mark_scraper_job(job_type, "failed")
            return None

        if summary.status is RunStatus.FAILED:
            self.store.mark_scraper_job(job_type, "failed")
            self.logger.error(
                "scheduled_scrape_failed", run_id=summary.run_id, error=summary.error_message
            )
            return summary

        finished = self._now()
        self.store.mark_scraper_job(
            job_type,
            "completed",
            last_run_at=finished,
            next_scheduled_run=finished + SCHEDULE_PERIOD,
        )
        self.logger.info(
            "scheduled_scrape_completed",
            run_id=summary.run_id,
            jobs_scraped=summary.jobs_scraped,
            jobs_stored=summary.jobs_stored,
        )
        return summary

    def run_now(self) -> RunSummary:
        """Run the scrape on the calling thread without touching bookkeeping."""

        self.logger.info("manual_scrape_triggered")
        return self.run_scrape()

    def list_jobs(self) -> list[dict]:
        return [
            {
                "id": job.id,
                "next_run_time": getattr(job, "next_run_time", None),
                "trigger": str(job.trigger),
            }
            for job in self.scheduler.get_jobs()
        ]


__all__ = ["APSchedulerAdapter", "CATCH_UP_JOB_ID", "DAILY_JOB_ID"]
