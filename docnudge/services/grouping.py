"""Grouping policy: turn a client's due-and-eligible pairs into dispatch tasks.

Two document types share one message only when the tier that fires for
them today is the same tier (their reminder dates for that tier coincide).
Types firing on different tiers go out as separate messages.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List

from docnudge.catalog import DocumentType, ordered
from docnudge.services.evaluator import DuePair
from docnudge.types.reminder_contract import Client, DispatchTask, ReminderSettings


def group_for_client(
    client: Client,
    due: Iterable[DuePair],
    eligible: Iterable[DuePair],
    settings: ReminderSettings,
) -> List[DispatchTask]:
    active = set(due) & set(eligible)
    if not active:
        return []

    tiers_by_type: Dict[DocumentType, List[int]] = defaultdict(list)
    for doc_type, tier in active:
        tiers_by_type[doc_type].append(tier)

    # A type with several tiers due on the same day is sent once, at the
    # highest tier; the lower tiers are discharged by the same message.
    by_tier: Dict[int, List[DocumentType]] = defaultdict(list)
    for doc_type, tiers in tiers_by_type.items():
        by_tier[max(tiers)].append(doc_type)

    tasks = []
    for tier in sorted(by_tier):
        types = ordered(by_tier[tier])
        marks = [(t, n) for t in types for n in sorted(tiers_by_type[t])]
        tasks.append(
            DispatchTask(
                client=client,
                document_types=types,
                tier=tier,
                due_date=settings.urgency_due_date(types),
                marks=marks,
            )
        )
    return tasks


def build_tasks(candidates, due: Iterable[DuePair], settings: ReminderSettings) -> List[DispatchTask]:
    """Dispatch tasks for every candidate, in a stable client order."""
    due = frozenset(due)
    tasks: List[DispatchTask] = []
    for client_id in sorted(candidates):
        entry = candidates[client_id]
        tasks.extend(group_for_client(entry.client, due, entry.pairs, settings))
    return tasks
