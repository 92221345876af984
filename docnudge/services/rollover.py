"""Monthly rollover and duplicate-record cleanup.

Neither is part of the reminder decision itself: rollover creates the
month's ledger rows the engine later reads, and cleanup repairs the
"one record per client per month" invariant when it has been broken.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from docnudge.utils.dates import local_today, month_label

_LOGGER = logging.getLogger(__name__)


async def rollover(store, label: Optional[str] = None, *, today: Optional[date] = None) -> int:
    """Create the document records for *label* (default: current month).

    Existing records are left untouched, so running it twice is harmless.
    Returns the number of records created.
    """
    label = label or month_label(today or local_today())
    created = await store.create_month_records(label)
    _LOGGER.info("Rollover for %s created %d document record(s)", label, created)
    return created


async def cleanup_duplicates(store, label: Optional[str] = None, *, today: Optional[date] = None) -> dict:
    """Keep the newest record per (client, month) and delete the older ones."""
    label = label or month_label(today or local_today())
    result = await store.cleanup_duplicate_records(label)
    if result["records_removed"]:
        _LOGGER.warning(
            "Removed %d duplicate record(s) for %d client(s) in %s",
            result["records_removed"], len(result["clients_with_duplicates"]), label,
        )
    else:
        _LOGGER.info("No duplicate document records for %s", label)
    return result
