"""APScheduler wrapper owning the periodic sync job."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

import structlog
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES, EVENT_JOB_MISSED, JobEvent
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..config import ScheduleConfig, ScheduleType

SYNC_JOB_ID = "sync::stars"


def build_trigger(schedule: ScheduleConfig) -> BaseTrigger:
    """Translate a ScheduleConfig into the matching APScheduler trigger."""

    if schedule.type is ScheduleType.CRON:
        return CronTrigger.from_crontab(str(schedule.value))
    if schedule.type is ScheduleType.INTERVAL:
        if isinstance(schedule.value, dict):
            return IntervalTrigger(**schedule.value)
        return IntervalTrigger(seconds=float(schedule.value))
    if schedule.value:
        return DateTrigger(run_date=datetime.fromisoformat(str(schedule.value)))
    return DateTrigger(run_date=datetime.now(timezone.utc))


class APSchedulerAdapter:
    """Run ``sync::stars`` on a background scheduler; overlapping fires are dropped."""

    def __init__(self) -> None:
        self.scheduler = BackgroundScheduler(job_defaults={"coalesce": True, "max_instances": 1})
        self.scheduler.add_listener(
            self._on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MAX_INSTANCES | EVENT_JOB_MISSED
        )
        self.logger = structlog.get_logger("starsync.scheduler")
        self.started = False

    def start(self) -> None:
        if not self.started:
            self.scheduler.start()
            self.started = True
            self.logger.info("apscheduler_started", next_run=str(self.next_run_time()))

    def shutdown(self) -> None:
        if self.started:
            self.scheduler.shutdown(wait=False)
            self.started = False
            self.logger.info("apscheduler_stopped")

    def schedule_sync(self, schedule: ScheduleConfig, callback: Callable[[], None]) -> None:
        self.scheduler.add_job(callback, trigger=build_trigger(schedule), id=SYNC_JOB_ID, replace_existing=True)
        self.logger.info("job_scheduled", job=SYNC_JOB_ID, schedule=schedule.model_dump(mode="json"))

    def remove_sync(self) -> None:
        if self.scheduler.get_job(SYNC_JOB_ID) is None:
            return
        self.scheduler.remove_job(SYNC_JOB_ID)
        self.logger.info("job_removed", job=SYNC_JOB_ID)

    def next_run_time(self) -> datetime | None:
        job = self.scheduler.get_job(SYNC_JOB_ID)
        return getattr(job, "next_run_time", None) if job is not None else None

    def _on_job_event(self, event: JobEvent) -> None:
        if event.code == EVENT_JOB_MAX_INSTANCES:
            self.logger.warning("scheduled_sync_overlap", job=event.job_id)
        elif event.code == EVENT_JOB_MISSED:
            self.logger.warning("scheduled_sync_missed", job=event.job_id)
        else:
            self.logger.error("scheduled_sync_error", job=event.job_id, error=str(getattr(event, "exception", "")))


__all__ = ["APSchedulerAdapter", "SYNC_JOB_ID", "build_trigger"]
