"""Ledger maintenance tasks run outside the API process."""

from __future__ import annotations

import asyncio
from typing import Optional

import db
from docnudge.celery_app import celery_app
from docnudge.services import rollover as rollover_service


# ---------------------------------------------------------------------------
# Celery Tasks
# ---------------------------------------------------------------------------

@celery_app.task(name="docnudge.workers.ledger.cleanup_duplicates", bind=True, max_retries=3)
def cleanup_duplicates(self, month_label: Optional[str] = None) -> dict:  # noqa: D401
    """Delete duplicate document records for *month_label* (default: current month)."""
    try:
        return asyncio.run(_run(rollover_service.cleanup_duplicates(db, month_label)))
    except Exception as exc:  # noqa: BLE001
        raise self.retry(exc=exc)


@celery_app.task(name="docnudge.workers.ledger.rollover_month", bind=True, max_retries=3)
def rollover_month(self, month_label: Optional[str] = None) -> int:  # noqa: D401
    """Create the month's document records; safe to re-run."""
    try:
        return asyncio.run(_run(rollover_service.rollover(db, month_label)))
    except Exception as exc:  # noqa: BLE001
        raise self.retry(exc=exc)


async def _run(coro):
    # pooled connections are bound to this event loop
    try:
        return await coro
    finally:
        await db.dispose_engine()
