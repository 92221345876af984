"""In-process scheduler for the daily reminder job and the monthly rollover.

Runs on APScheduler's ``AsyncIOScheduler`` inside the API process. The
daily job fires at the dispatch time from the active settings row (9:00 AM
when there is none); the rollover job fires at the same wall-clock time on
the first of every month.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from config import settings as app_settings
from docnudge.errors import UnknownChannel
from docnudge.services.engine import ReminderEngine
from docnudge.services.report import build_month_report
from docnudge.services.rollover import rollover
from docnudge.types.reminder_contract import Channel, DispatchTime, RunSummary
from docnudge.utils.dates import local_today, month_label

_LOGGER = logging.getLogger(__name__)

DAILY_JOB_ID = "daily-reminders"
ROLLOVER_JOB_ID = "monthly-rollover"
REPORT = "report"


class SchedulerPhase(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    FIRING = "firing"


@dataclass
class SchedulerState:
    phase: SchedulerPhase = SchedulerPhase.IDLE
    timezone: str = app_settings.DEFAULT_TIMEZONE
    cron_expression: Optional[str] = None
    rollover_cron: Optional[str] = None
    last_run: Optional[RunSummary] = None
    last_manual: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    last_rollover: Optional[Dict[str, Any]] = None


class ReminderScheduler:
    def __init__(
        self,
        engine: ReminderEngine,
        store,
        *,
        chat_session=None,
        tz: Optional[str] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
        clock=local_today,
    ):
        self.engine = engine
        self.store = store
        self.chat_session = chat_session
        self.state = SchedulerState(timezone=tz or app_settings.DEFAULT_TIMEZONE)
        self._scheduler = scheduler or AsyncIOScheduler(timezone=self.state.timezone)
        self._clock = clock

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        await self._schedule()
        if not self._scheduler.running:
            self._scheduler.start()
        _LOGGER.info(
            "Scheduler started: reminders at '%s', rollover at '%s' (%s)",
            self.state.cron_expression, self.state.rollover_cron, self.state.timezone,
        )

    async def reload(self) -> None:
        """Drop both jobs and recompute them from the current settings row."""
        for job_id in (DAILY_JOB_ID, ROLLOVER_JOB_ID):
            if self._scheduler.get_job(job_id) is not None:
                self._scheduler.remove_job(job_id)
        self.state.phase = SchedulerPhase.IDLE
        await self._schedule()
        _LOGGER.info("Scheduler reloaded: reminders at '%s'", self.state.cron_expression)

    async def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self.state.phase = SchedulerPhase.IDLE
        if self.chat_session is not None:
            await self.chat_session.stop()
        _LOGGER.info("Scheduler stopped")

    async def _schedule(self) -> None:
        current = await self.store.get_active_settings()
        if current is None:
            _LOGGER.info("No reminder settings found, using the default dispatch time")
            dispatch_time = DispatchTime()
        else:
            dispatch_time = current.dispatch_time

        self.state.cron_expression = dispatch_time.cron_expression()
        self.state.rollover_cron = dispatch_time.cron_expression(day_of_month="1")
        self._scheduler.add_job(
            self._fire_daily,
            CronTrigger.from_crontab(self.state.cron_expression, timezone=self.state.timezone),
            id=DAILY_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.add_job(
            self._fire_rollover,
            CronTrigger.from_crontab(self.state.rollover_cron, timezone=self.state.timezone),
            id=ROLLOVER_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.state.phase = SchedulerPhase.SCHEDULED

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------
    async def _fire_daily(self) -> RunSummary:
        self.state.phase = SchedulerPhase.FIRING
        _LOGGER.info("Running scheduled reminder job")
        try:
            summary = await self.engine.run_all(self._clock())
            self.state.last_run = summary
            return summary
        finally:
            self.state.phase = SchedulerPhase.SCHEDULED

    async def _fire_rollover(self) -> Dict[str, Any]:
        today = self._clock()
        label = month_label(today)
        created = await rollover(self.store, label)
        report = await build_month_report(self.store, label)
        self.state.last_rollover = {
            "month_label": label,
            "records_created": created,
            "report": report.model_dump(mode="json"),
            "at": datetime.now(timezone.utc).isoformat(),
        }
        return self.state.last_rollover

    # ------------------------------------------------------------------
    # Manual control
    # ------------------------------------------------------------------
    async def run_now(self, channel: str, today: Optional[date] = None) -> Dict[str, Any]:
        """Run one channel (or the month report) immediately.

        The clock is bypassed; the reminder-day gate and eligibility are not.
        """
        name = str(getattr(channel, "value", channel)).lower()
        if name == REPORT:
            result = await self._report()
        elif name in {c.value for c in Channel}:
            summary = await self.engine.run_channel(Channel(name), today)
            result = summary.model_dump(mode="json")
        else:
            raise UnknownChannel(name)
        self.state.last_manual[name] = {"at": datetime.now(timezone.utc).isoformat(), "result": result}
        return result

    async def _report(self) -> Dict[str, Any]:
        current = await self.store.get_active_settings()
        label = current.month_label if current is not None else month_label(self._clock())
        report = await build_month_report(self.store, label)
        return report.model_dump(mode="json")

    async def stop_chat(self) -> None:
        if self.chat_session is None:
            return
        await self.chat_session.stop()

    def get_status(self) -> Dict[str, Any]:
        job = self._scheduler.get_job(DAILY_JOB_ID) if self._scheduler.running else None
        next_run = getattr(job, "next_run_time", None) if job is not None else None
        chat = self.chat_session
        return {
            "phase": self.state.phase.value,
            "timezone": self.state.timezone,
            "cron_expression": self.state.cron_expression,
            "rollover_cron": self.state.rollover_cron,
            "next_run": next_run.isoformat() if next_run else None,
            "last_run": self.state.last_run.model_dump(mode="json") if self.state.last_run else None,
            "last_manual": self.state.last_manual,
            "last_rollover": self.state.last_rollover,
            "chat": {
                "configured": chat.configured,
                "ready": chat.ready,
                "connecting": chat.connecting,
            } if chat is not None else None,
        }
