"""Month status report: receipt and reminder counts per document type."""

from __future__ import annotations

import logging
from collections import Counter

from docnudge.catalog import DOCUMENTS, TIERS
from docnudge.types.reminder_contract import MonthReport, TypeTally

_LOGGER = logging.getLogger(__name__)


async def build_month_report(store, month_label: str) -> MonthReport:
    """Summarise every document record of *month_label*.

    ``store.fetch_month_records`` yields one dict per record::

        {"client_id": 3, "receipts": {DocumentType: bool},
         "marks": {(DocumentType, tier): bool}}
    """
    records = await store.fetch_month_records(month_label)
    report = MonthReport(month_label=month_label)
    per_client = Counter(r["client_id"] for r in records)
    report.clients = len(per_client)
    report.duplicate_records = sum(n - 1 for n in per_client.values())

    for doc_type in DOCUMENTS:
        tally = TypeTally(reminders_sent={tier: 0 for tier in TIERS})
        for record in records:
            if doc_type not in record["receipts"]:
                continue
            tally.applicable += 1
            if record["receipts"][doc_type]:
                tally.received += 1
            else:
                tally.pending += 1
            for tier in TIERS:
                if record["marks"].get((doc_type, tier)):
                    tally.reminders_sent[tier] += 1
        report.totals[doc_type] = tally

    _LOGGER.info(
        "Report %s: %d client(s), %s",
        month_label,
        report.clients,
        ", ".join(f"{t.value} pending={v.pending}/{v.applicable}" for t, v in report.totals.items()),
    )
    return report
