"""Calendar helpers shared by the scheduler, rollover and scripts."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import settings
from docnudge.catalog import MONTH_LABEL_FORMAT


def local_now(tz: Optional[str] = None) -> datetime:
    return datetime.now(ZoneInfo(tz or settings.DEFAULT_TIMEZONE))


def local_today(tz: Optional[str] = None) -> date:
    return local_now(tz).date()


def month_label(day: date) -> str:
    """Tracking-period label, e.g. ``June 2024``."""
    return day.strftime(MONTH_LABEL_FORMAT)
