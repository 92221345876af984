"""Candidate selection: which clients are still owed a given reminder."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Set

from docnudge.catalog import position
from docnudge.services.evaluator import DuePair
from docnudge.types.reminder_contract import Client

_LOGGER = logging.getLogger(__name__)


@dataclass
class Candidate:
    client: Client
    pairs: Set[DuePair] = field(default_factory=set)


async def select_candidates(store, due: Iterable[DuePair], month_label: str) -> Dict[int, Candidate]:
    """Collect, per client, the due pairs they are still eligible for.

    ``store.find_eligible`` only returns clients whose record for the month
    has the type pending and the tier unsent. A type the client has since
    been exempted from is dropped here as well.
    """
    candidates: Dict[int, Candidate] = {}
    for doc_type, tier in sorted(due, key=lambda p: (p[1], position(p[0]))):
        clients = await store.find_eligible(doc_type, tier, month_label)
        _LOGGER.info(
            "Found %d client(s) eligible for %s tier %d (%s)",
            len(clients), doc_type.value, tier, month_label,
        )
        for client in clients:
            entry = candidates.setdefault(client.id, Candidate(client=client))
            entry.pairs.add((doc_type, tier))

    for client_id, entry in list(candidates.items()):
        applicable = await store.get_applicable_types(client_id)
        entry.pairs = {p for p in entry.pairs if p[0] in applicable}
        if not entry.pairs:
            del candidates[client_id]
    return candidates
