"""Writes to the sent-marker subset of the document ledger."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from docnudge.catalog import DocumentType, tier_spec
from docnudge.types.reminder_contract import DispatchTask

_LOGGER = logging.getLogger(__name__)


class LedgerUpdater:
    def __init__(self, store):
        self.store = store

    async def mark_sent(
        self,
        client_id: int,
        doc_type: DocumentType,
        tier: int,
        month_label: str,
        timestamp: Optional[datetime] = None,
    ) -> bool:
        """Set the sent flag for one (client, type, tier, month).

        Idempotent: an already-set flag keeps its original timestamp and the
        call returns False. Flags are never cleared here.
        """
        tier_spec(tier)
        timestamp = timestamp or datetime.now(timezone.utc)
        changed = await self.store.mark_reminder_sent(client_id, doc_type, tier, month_label, timestamp)
        if changed:
            _LOGGER.info("Marked %s tier %d sent for client %s (%s)", doc_type.value, tier, client_id, month_label)
        return changed

    async def mark_task(self, task: DispatchTask, timestamp: Optional[datetime] = None) -> int:
        timestamp = timestamp or datetime.now(timezone.utc)
        changed = 0
        for doc_type, tier in task.marks:
            if await self.mark_sent(task.client.id, doc_type, tier, task.client.month_label, timestamp):
                changed += 1
        return changed

    async def reset_month(self, month_label: str) -> int:
        """Administrative reset: clear every tier-sent flag for *month_label*.

        Receipt state is left alone. Returns the number of flags cleared.
        """
        cleared = await self.store.reset_tier_sent_flags(month_label)
        _LOGGER.warning("Reset %d reminder flag(s) for %s", cleared, month_label)
        return cleared
