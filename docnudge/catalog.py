"""Registry of tracked document types and reminder tiers.

Everything else in the engine iterates over these tables, so adding a
document type or a third reminder tier means adding an entry here and a
settings value for its dates; no column or code path is tied to a
specific type.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class DocumentType(str, Enum):
    PRIMARY_FILING = "primary_filing"
    BANK_STATEMENT = "bank_statement"
    WITHHOLDING_STATEMENT = "withholding_statement"


@dataclass(frozen=True)
class DocumentSpec:
    type: DocumentType
    label: str  # wording used in client-facing messages


@dataclass(frozen=True)
class TierSpec:
    number: int
    label: str
    urgent: bool


DOCUMENTS: dict[DocumentType, DocumentSpec] = {
    DocumentType.PRIMARY_FILING: DocumentSpec(DocumentType.PRIMARY_FILING, "GSTR 1"),
    DocumentType.WITHHOLDING_STATEMENT: DocumentSpec(DocumentType.WITHHOLDING_STATEMENT, "TDS data"),
    DocumentType.BANK_STATEMENT: DocumentSpec(DocumentType.BANK_STATEMENT, "Bank statement"),
}

TIERS: dict[int, TierSpec] = {
    1: TierSpec(1, "Gentle reminder", urgent=False),
    2: TierSpec(2, "URGENT REMINDER", urgent=True),
}

# Due date shown for a dispatch whose own types carry no due date.
DUE_DATE_FALLBACK: tuple[DocumentType, ...] = (
    DocumentType.PRIMARY_FILING,
    DocumentType.WITHHOLDING_STATEMENT,
)

# tracking periods are labelled by calendar month, e.g. "June 2024"
MONTH_LABEL_FORMAT = "%B %Y"


def label(doc_type: DocumentType) -> str:
    return DOCUMENTS[doc_type].label


def tier_spec(tier: int) -> TierSpec:
    try:
        return TIERS[tier]
    except KeyError:
        raise ValueError(f"unknown reminder tier {tier!r}") from None


def ordered(types: Iterable[DocumentType]) -> list[DocumentType]:
    """Return *types* de-duplicated in registry order."""
    wanted = set(types)
    return [t for t in DOCUMENTS if t in wanted]


def position(doc_type: DocumentType) -> int:
    return list(DOCUMENTS).index(doc_type)
