"""Reminder-day evaluation: which (document type, tier) pairs fire today."""

from __future__ import annotations

from datetime import date
from typing import FrozenSet, Optional, Tuple

from docnudge.catalog import DOCUMENTS, TIERS, DocumentType
from docnudge.types.reminder_contract import ReminderSettings

DuePair = Tuple[DocumentType, int]


def due_today(today: date, settings: Optional[ReminderSettings]) -> FrozenSet[DuePair]:
    """Pairs whose configured reminder date is exactly *today*.

    A missed day is not caught up: a date in the past never matches.
    Unset dates never match. If a type has both tiers on the same day both
    pairs are returned; the grouping policy decides what to send.
    """
    if settings is None:
        return frozenset()
    return frozenset(
        (doc_type, tier)
        for doc_type in DOCUMENTS
        for tier in TIERS
        if settings.reminder_date(doc_type, tier) == today
    )


def is_reminder_day(today: date, settings: Optional[ReminderSettings]) -> bool:
    return bool(due_today(today, settings))
