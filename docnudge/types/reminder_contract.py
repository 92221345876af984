"""Pydantic models shared by the reminder engine, the persistence layer and
the HTTP API.

These classes stay framework-agnostic so they can be reused by the
scheduler, Celery workers, API responses and tests without pulling in
FastAPI or database layers.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from docnudge.catalog import TIERS, DocumentType, DUE_DATE_FALLBACK, MONTH_LABEL_FORMAT


class Channel(str, Enum):
    EMAIL = "email"
    CHAT = "chat"


# ──────────────────────────────
# Settings snapshot
# ──────────────────────────────


class DispatchTime(BaseModel):
    """Wall-clock time of the daily job, as entered by the office (12-hour)."""

    hour: int = Field(default=9, ge=1, le=12)
    minute: int = Field(default=0, ge=0, le=59)
    meridiem: Literal["AM", "PM"] = "AM"

    @field_validator("meridiem", mode="before")
    def _upper(cls, v):  # noqa: N805
        return v.upper() if isinstance(v, str) else v

    def to_24h(self) -> Tuple[int, int]:
        hour = self.hour
        if self.meridiem == "PM" and hour < 12:
            hour += 12
        elif self.meridiem == "AM" and hour == 12:
            hour = 0
        return hour, self.minute

    def cron_expression(self, day_of_month: str = "*") -> str:
        hour, minute = self.to_24h()
        return f"{minute} {hour} {day_of_month} * *"


class ReminderSettings(BaseModel):
    """The active settings row: one tracking month and its dates."""

    id: Optional[int] = None
    month_label: str
    due_dates: Dict[DocumentType, Optional[date]] = Field(default_factory=dict)
    reminder_dates: Dict[DocumentType, Dict[int, Optional[date]]] = Field(default_factory=dict)
    channel_enabled: Dict[Channel, bool] = Field(default_factory=dict)
    dispatch_time: DispatchTime = Field(default_factory=DispatchTime)

    @field_validator("month_label")
    def _calendar_month(cls, v: str):  # noqa: N805
        try:
            parsed = datetime.strptime(v.strip(), MONTH_LABEL_FORMAT)
        except ValueError:
            raise ValueError(f"month_label must look like 'June 2024', got {v!r}") from None
        return parsed.strftime(MONTH_LABEL_FORMAT)

    @field_validator("reminder_dates")
    def _known_tiers(cls, v):  # noqa: N805
        for doc_type, tiers in v.items():
            unknown = set(tiers) - set(TIERS)
            if unknown:
                raise ValueError(f"unknown tier(s) {sorted(unknown)} for {doc_type.value}")
        return v

    def reminder_date(self, doc_type: DocumentType, tier: int) -> Optional[date]:
        return self.reminder_dates.get(doc_type, {}).get(tier)

    def due_date(self, doc_type: DocumentType) -> Optional[date]:
        return self.due_dates.get(doc_type)

    def is_enabled(self, channel: Channel) -> bool:
        return self.channel_enabled.get(Channel(channel), True)

    def urgency_due_date(self, types: List[DocumentType]) -> Optional[date]:
        """Due date quoted in a message about *types*.

        The earliest due date among the grouped types wins; if none of them
        has one, the fallback chain from the catalog is consulted.
        """
        own = [d for d in (self.due_date(t) for t in types) if d is not None]
        if own:
            return min(own)
        for fallback in DUE_DATE_FALLBACK:
            if self.due_date(fallback) is not None:
                return self.due_date(fallback)
        return None


# ──────────────────────────────
# Clients & dispatch tasks
# ──────────────────────────────


class Client(BaseModel):
    """A client as seen by the eligibility query for one month."""

    id: int
    name: str
    month_label: str
    record_id: Optional[int] = None


class ContactChannels(BaseModel):
    emails: List[str] = Field(default_factory=list, max_length=3)
    chat_target: Optional[str] = None

    @field_validator("emails", mode="before")
    def _drop_blank(cls, v):  # noqa: N805
        return [e.strip() for e in (v or []) if e and e.strip()]

    @field_validator("chat_target", mode="before")
    def _blank_is_none(cls, v):  # noqa: N805
        if isinstance(v, str) and not v.strip():
            return None
        return v


class DispatchTask(BaseModel):
    """One client, one or more grouped document types, one tier."""

    client: Client
    document_types: List[DocumentType]
    tier: int
    due_date: Optional[date] = None
    marks: List[Tuple[DocumentType, int]] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check(self):
        if not self.document_types:
            raise ValueError("a dispatch task needs at least one document type")
        if self.tier not in TIERS:
            raise ValueError(f"unknown tier {self.tier}")
        if not self.marks:
            self.marks = [(t, self.tier) for t in self.document_types]
        return self


class EmailMessage(BaseModel):
    subject: str
    body: str


# ──────────────────────────────
# Outcomes
# ──────────────────────────────


class DispatchStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class DispatchResult(BaseModel):
    status: DispatchStatus
    error: Optional[str] = None
    reason: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status is DispatchStatus.SENT


class ChannelStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"  # channel could not be prepared (e.g. chat not ready)
    DISABLED = "disabled"
    IDLE = "idle"  # nothing due today
    ERROR = "error"  # the channel run raised unexpectedly


class ChannelSummary(BaseModel):
    channel: Channel
    status: ChannelStatus = ChannelStatus.COMPLETED
    attempted: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    reason: Optional[str] = None

    def record(self, result: DispatchResult) -> None:
        if result.status is DispatchStatus.SKIPPED:
            self.skipped += 1
            return
        self.attempted += 1
        if result.status is DispatchStatus.SENT:
            self.sent += 1
        else:
            self.failed += 1


class RunSummary(BaseModel):
    run_date: date
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    month_label: Optional[str] = None
    channels: Dict[Channel, ChannelSummary] = Field(default_factory=dict)


class EventOutcome(str, Enum):
    SENT = "sent"
    FAILED = "failed"


class ReminderEvent(BaseModel):
    """Append-only audit record of one delivery attempt."""

    channel: Channel
    client_id: int
    target: str
    subject: Optional[str] = None
    content: str
    document_types: List[DocumentType]
    tier: int
    month_label: str
    outcome: EventOutcome
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TypeTally(BaseModel):
    applicable: int = 0
    received: int = 0
    pending: int = 0
    reminders_sent: Dict[int, int] = Field(default_factory=dict)


class MonthReport(BaseModel):
    month_label: str
    clients: int = 0
    duplicate_records: int = 0
    totals: Dict[DocumentType, TypeTally] = Field(default_factory=dict)
