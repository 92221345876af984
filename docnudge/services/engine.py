"""The reminder engine: evaluate today, select candidates, group, dispatch.

``store`` is any object exposing the persistence contract implemented by
the :mod:`db` package (``get_active_settings``, ``find_eligible``,
``get_applicable_types``, ``get_contact_channels``, ``mark_reminder_sent``,
``record_event`` ...). Production passes the ``db`` module itself.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, FrozenSet, List, Optional

from docnudge.errors import UnknownChannel
from docnudge.services.dispatch import ChannelDispatcher, ChatDispatcher, EmailDispatcher
from docnudge.services.evaluator import DuePair, due_today
from docnudge.services.grouping import build_tasks
from docnudge.services.selector import select_candidates
from docnudge.types.reminder_contract import (
    Channel,
    ChannelStatus,
    ChannelSummary,
    DispatchTask,
    ReminderSettings,
    RunSummary,
)
from docnudge.utils.chat import ChatSession
from docnudge.utils.dates import local_today
from docnudge.utils.email import GraphMailer

_LOGGER = logging.getLogger(__name__)


@dataclass
class ReminderPlan:
    today: date
    settings: Optional[ReminderSettings] = None
    due: FrozenSet[DuePair] = frozenset()
    tasks: List[DispatchTask] = field(default_factory=list)


class ReminderEngine:
    def __init__(self, store, dispatchers: Dict[Channel, ChannelDispatcher], *, clock=local_today):
        self.store = store
        self.dispatchers = dispatchers
        self._clock = clock

    async def plan(self, today: Optional[date] = None) -> ReminderPlan:
        plan = ReminderPlan(today=today or self._clock())
        plan.settings = await self.store.get_active_settings()
        if plan.settings is None:
            _LOGGER.info("No reminder settings found, nothing to send")
            return plan

        plan.due = due_today(plan.today, plan.settings)
        if not plan.due:
            _LOGGER.info("%s is not a reminder day for %s", plan.today.isoformat(), plan.settings.month_label)
            return plan

        candidates = await select_candidates(self.store, plan.due, plan.settings.month_label)
        plan.tasks = build_tasks(candidates, plan.due, plan.settings)
        _LOGGER.info(
            "Planned %d reminder message(s) for %d client(s) on %s",
            len(plan.tasks), len(candidates), plan.today.isoformat(),
        )
        return plan

    def _dispatcher(self, channel) -> ChannelDispatcher:
        try:
            return self.dispatchers[Channel(channel)]
        except (KeyError, ValueError):
            raise UnknownChannel(str(getattr(channel, "value", channel))) from None

    async def _run_planned(self, channel: Channel, plan: ReminderPlan) -> ChannelSummary:
        dispatcher = self._dispatcher(channel)
        if plan.settings is None:
            return ChannelSummary(channel=channel, status=ChannelStatus.IDLE, reason="no settings")
        if plan.settings.is_enabled(channel) and not plan.due:
            return ChannelSummary(channel=channel, status=ChannelStatus.IDLE, reason="not a reminder day")
        return await dispatcher.run(plan.tasks, plan.settings, plan.today)

    async def run_channel(self, channel, today: Optional[date] = None) -> ChannelSummary:
        """Run a single channel now. The reminder-day gate still applies."""
        self._dispatcher(channel)
        plan = await self.plan(today)
        return await self._run_planned(Channel(channel), plan)

    async def run_all(self, today: Optional[date] = None) -> RunSummary:
        """Daily job: every channel runs concurrently from the same plan.

        A failing channel never delays or aborts the others; results are only
        joined for the run summary.
        """
        plan = await self.plan(today)
        summary = RunSummary(
            run_date=plan.today,
            month_label=plan.settings.month_label if plan.settings else None,
        )
        channels = list(self.dispatchers)
        results = await asyncio.gather(
            *(self._run_planned(channel, plan) for channel in channels),
            return_exceptions=True,
        )
        for channel, result in zip(channels, results):
            if isinstance(result, BaseException):
                _LOGGER.error("%s channel run crashed: %r", channel.value, result)
                result = ChannelSummary(channel=channel, status=ChannelStatus.ERROR, reason=repr(result))
            summary.channels[channel] = result
        summary.finished_at = datetime.now(timezone.utc)
        _LOGGER.info(
            "Reminder job for %s finished: %s",
            plan.today.isoformat(),
            ", ".join(f"{c.value}={s.status.value} sent={s.sent} failed={s.failed}" for c, s in summary.channels.items()),
        )
        return summary


def build_engine(store, *, mailer=None, chat_session=None) -> ReminderEngine:
    """Engine wired to the production email and chat transports."""
    mailer = mailer or GraphMailer()
    chat_session = chat_session or ChatSession()
    return ReminderEngine(
        store,
        {
            Channel.EMAIL: EmailDispatcher(store, mailer),
            Channel.CHAT: ChatDispatcher(store, chat_session),
        },
    )
