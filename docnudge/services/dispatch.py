"""Channel dispatchers: deliver dispatch tasks over email and group chat.

Each dispatcher works on its own: it resolves the client's target for its
channel, sends, writes a ``ReminderEvent`` and, only when the send went
through, marks the task's reminders as sent. Sends to successive clients
are sequential with a random pause in between to stay under upstream rate
limits.
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import date
from typing import List, Optional, Sequence, Tuple

from config import settings as app_settings
from docnudge.errors import ChannelUnavailable
from docnudge.services.composer import compose_chat, compose_email
from docnudge.services.ledger import LedgerUpdater
from docnudge.types.reminder_contract import (
    Channel,
    ChannelStatus,
    ChannelSummary,
    ContactChannels,
    DispatchResult,
    DispatchStatus,
    DispatchTask,
    EventOutcome,
    ReminderEvent,
    ReminderSettings,
)

_LOGGER = logging.getLogger(__name__)

NOT_CONFIGURED = "not_configured"


class ChannelDispatcher:
    channel: Channel

    def __init__(
        self,
        store,
        *,
        ledger: Optional[LedgerUpdater] = None,
        signature: str = app_settings.FIRM_SIGNATURE,
        delay_range: Tuple[float, float] = (app_settings.DISPATCH_DELAY_MIN, app_settings.DISPATCH_DELAY_MAX),
        sleep=asyncio.sleep,
    ):
        self.store = store
        self.ledger = ledger or LedgerUpdater(store)
        self.signature = signature
        self.delay_range = delay_range
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Channel-specific hooks
    # ------------------------------------------------------------------
    async def prepare(self) -> None:
        """Acquire whatever the channel needs; raise ChannelUnavailable to skip the run."""

    def resolve_target(self, contacts: ContactChannels):
        raise NotImplementedError

    def describe_target(self, target) -> str:
        return str(target)

    def render(self, task: DispatchTask, today: date) -> Tuple[Optional[str], str]:
        raise NotImplementedError

    async def send(self, target, subject: Optional[str], content: str) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    async def dispatch(self, task: DispatchTask, settings: ReminderSettings, today: date) -> DispatchResult:
        if not settings.is_enabled(self.channel):
            return DispatchResult(status=DispatchStatus.SKIPPED, reason="disabled")

        contacts = await self.store.get_contact_channels(task.client.id)
        target = self.resolve_target(contacts)
        if not target:
            _LOGGER.info("No %s contact for client %s, skipping", self.channel.value, task.client.name)
            return DispatchResult(status=DispatchStatus.SKIPPED, reason="no_target")

        subject, content = self.render(task, today)
        try:
            await self.send(target, subject, content)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning(
                "Failed to send %s reminder to %s (%s): %s",
                self.channel.value, task.client.name, self.describe_target(target), exc,
            )
            await self._log_event(task, target, subject, content, EventOutcome.FAILED, str(exc))
            return DispatchResult(status=DispatchStatus.FAILED, error=str(exc))

        _LOGGER.info(
            "Sent %s tier %d reminder (%s) to %s",
            self.channel.value, task.tier, ", ".join(t.value for t in task.document_types), task.client.name,
        )
        await self._log_event(task, target, subject, content, EventOutcome.SENT)
        try:
            await self.ledger.mark_task(task)
        except Exception:  # noqa: BLE001
            # delivered; the flags stay clear
            _LOGGER.exception("Could not mark %s reminder sent for client %s", self.channel.value, task.client.id)
        return DispatchResult(status=DispatchStatus.SENT)

    async def _log_event(self, task, target, subject, content, outcome, error=None) -> None:
        event = ReminderEvent(
            channel=self.channel,
            client_id=task.client.id,
            target=self.describe_target(target),
            subject=subject,
            content=content,
            document_types=task.document_types,
            tier=task.tier,
            month_label=task.client.month_label,
            outcome=outcome,
            error=error,
        )
        try:
            await self.store.record_event(event)
        except Exception:  # noqa: BLE001
            _LOGGER.exception("Could not write %s reminder event for client %s", self.channel.value, task.client.id)

    async def run(self, tasks: Sequence[DispatchTask], settings: ReminderSettings, today: date) -> ChannelSummary:
        summary = ChannelSummary(channel=self.channel)
        if not settings.is_enabled(self.channel):
            _LOGGER.info("%s reminders are disabled in settings, skipping", self.channel.value)
            summary.status = ChannelStatus.DISABLED
            return summary
        if not tasks:
            return summary

        try:
            await self.prepare()
        except ChannelUnavailable as exc:
            _LOGGER.error("%s channel unavailable, skipping run: %s", self.channel.value, exc)
            summary.status = ChannelStatus.SKIPPED
            summary.reason = str(exc)
            return summary

        for index, task in enumerate(tasks):
            try:
                result = await self.dispatch(task, settings, today)
            except Exception as exc:  # noqa: BLE001
                _LOGGER.exception("Error processing client %s on %s", task.client.name, self.channel.value)
                result = DispatchResult(status=DispatchStatus.FAILED, error=str(exc))
            summary.record(result)
            if result.status is not DispatchStatus.SKIPPED and index < len(tasks) - 1:
                await self._throttle()

        _LOGGER.info(
            "%s reminders: %d sent, %d failed, %d skipped",
            self.channel.value, summary.sent, summary.failed, summary.skipped,
        )
        return summary

    async def _throttle(self) -> None:
        low, high = self.delay_range
        if high <= 0:
            return
        await self._sleep(random.uniform(low, high))


class EmailDispatcher(ChannelDispatcher):
    channel = Channel.EMAIL

    def __init__(self, store, mailer, **kwargs):
        super().__init__(store, **kwargs)
        self.mailer = mailer

    async def prepare(self) -> None:
        if not getattr(self.mailer, "configured", True):
            raise ChannelUnavailable(NOT_CONFIGURED)

    def resolve_target(self, contacts: ContactChannels) -> Optional[List[str]]:
        return list(contacts.emails) or None

    def describe_target(self, target) -> str:
        return ", ".join(target)

    def render(self, task, today):
        message = compose_email(task, today, self.signature)
        return message.subject, message.body

    async def send(self, target, subject, content) -> None:
        await self.mailer.send(target, subject, content)


class ChatDispatcher(ChannelDispatcher):
    channel = Channel.CHAT

    def __init__(self, store, session, *, ready_timeout: float = app_settings.CHAT_READY_TIMEOUT, **kwargs):
        super().__init__(store, **kwargs)
        self.session = session
        self.ready_timeout = ready_timeout

    async def prepare(self) -> None:
        if not self.session.configured:
            raise ChannelUnavailable(NOT_CONFIGURED)
        if not await self.session.wait_ready(self.ready_timeout):
            raise ChannelUnavailable(f"chat session not ready within {self.ready_timeout:g}s")

    def resolve_target(self, contacts: ContactChannels) -> Optional[str]:
        return contacts.chat_target

    def render(self, task, today):
        return None, compose_chat(task, today, self.signature)

    async def send(self, target, subject, content) -> None:
        await self.session.send_group_message(target, content)
