"""APScheduler wrapper running jobs on their crontab."""

from __future__ import annotations

from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from ..config import JobConfig
from ..logging_conf import configure_logging

SWEEP_JOB_ID = "sweep::publish-scheduled"


class APSchedulerAdapter:
    """Manage APScheduler jobs for configured content jobs."""

    def __init__(self, scheduler: BackgroundScheduler | None = None) -> None:
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")
        self.logger = configure_logging().bind(component="scheduler")
        self.started = False

    def start(self) -> None:
        if not self.started:
            self.scheduler.start()
            self.started = True
            self.logger.info("apscheduler_started")

    def shutdown(self) -> None:
        if self.started:
            self.scheduler.shutdown(wait=False)
            self.started = False
            self.logger.info("apscheduler_stopped")

    def schedule_job(self, job: JobConfig, callback: Callable[[str], object]) -> bool:
        """Register ``callback(job_name)`` on the job's crontab; skipped when disabled."""

        if not job.enabled or not job.schedule:
            self.logger.info("job_not_scheduled", job=job.job_name, enabled=job.enabled)
            return False
        trigger = self._build_trigger(job.schedule)
        self.scheduler.add_job(
            callback,
            trigger=trigger,
            id=f"job::{job.job_name}",
            args=[job.job_name],
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.logger.info("job_scheduled", job=job.job_name, schedule=job.schedule)
        return True

    def schedule_sweep(self, crontab: str, callback: Callable[[], object]) -> None:
        self.scheduler.add_job(
            callback,
            trigger=self._build_trigger(crontab),
            id=SWEEP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.logger.info("sweep_scheduled", schedule=crontab)

    @staticmethod
    def _build_trigger(crontab: str) -> CronTrigger:
        return CronTrigger.from_crontab(crontab, timezone="UTC")

    def list_jobs(self) -> list[dict]:
        return [
            {
                "id": job.id,
                "next_run_time": getattr(job, "next_run_time", None),
                "trigger": str(job.trigger),
            }
            for job in self.scheduler.get_jobs()
        ]


__all__ = ["APSchedulerAdapter", "SWEEP_JOB_ID"]
