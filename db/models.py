"""ORM models for the document ledger.

Document types and tiers are stored as values (``document_type``,
``tier`` columns), never as column names, so adding either is a registry
change in ``docnudge.catalog`` only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class ClientRow(Base):
    __tablename__ = "clients"

    id:             Mapped[int] = mapped_column(primary_key=True)
    name:           Mapped[str] = mapped_column(String(255))
    emails:         Mapped[list[str]] = mapped_column(JSON, default=list)
    chat_target:    Mapped[str | None] = mapped_column(String(255))
    document_types: Mapped[list[str]] = mapped_column(JSON, default=list)
    active:         Mapped[bool] = mapped_column(default=True)
    created_at:     Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ReminderSettingsRow(Base):
    """Versioned settings: the row with the highest id is the active one."""

    __tablename__ = "reminder_settings"

    id:                Mapped[int] = mapped_column(primary_key=True)
    month_label:       Mapped[str] = mapped_column(String(32))
    due_dates:         Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    reminder_dates:    Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    channel_enabled:   Mapped[dict[str, bool]] = mapped_column(JSON, default=dict)
    dispatch_hour:     Mapped[int] = mapped_column(default=9)
    dispatch_minute:   Mapped[int] = mapped_column(default=0)
    dispatch_meridiem: Mapped[str] = mapped_column(String(2), default="AM")
    created_at:        Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class DocumentRecord(Base):
    __tablename__ = "document_records"

    id:          Mapped[int] = mapped_column(primary_key=True)
    client_id:   Mapped[int] = mapped_column(ForeignKey("clients.id"))
    month_label: Mapped[str] = mapped_column(String(32))
    notes:       Mapped[str | None] = mapped_column(Text)
    created_at:  Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_document_records_month_client", "month_label", "client_id"),
    )


class DocumentReceipt(Base):
    """One row per applicable document type of a record."""

    __tablename__ = "document_receipts"

    id:            Mapped[int] = mapped_column(primary_key=True)
    record_id:     Mapped[int] = mapped_column(ForeignKey("document_records.id", ondelete="CASCADE"))
    document_type: Mapped[str] = mapped_column(String(64))
    received:      Mapped[bool] = mapped_column(default=False)
    received_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("record_id", "document_type", name="uq_document_receipts_record_type"),
    )


class ReminderMark(Base):
    __tablename__ = "reminder_marks"

    id:            Mapped[int] = mapped_column(primary_key=True)
    record_id:     Mapped[int] = mapped_column(ForeignKey("document_records.id", ondelete="CASCADE"))
    document_type: Mapped[str] = mapped_column(String(64))
    tier:          Mapped[int]
    sent:          Mapped[bool] = mapped_column(default=False)
    sent_at:       Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("record_id", "document_type", "tier", name="uq_reminder_marks_record_type_tier"),
    )


class ReminderEventRow(Base):
    __tablename__ = "reminder_events"

    id:             Mapped[int] = mapped_column(primary_key=True)
    channel:        Mapped[str] = mapped_column(String(16))
    client_id:      Mapped[int] = mapped_column(ForeignKey("clients.id"))
    target:         Mapped[str] = mapped_column(Text)
    subject:        Mapped[str | None] = mapped_column(Text)
    content:        Mapped[str] = mapped_column(Text)
    document_types: Mapped[list[str]] = mapped_column(JSON, default=list)
    tier:           Mapped[int]
    month_label:    Mapped[str] = mapped_column(String(32))
    outcome:        Mapped[str] = mapped_column(String(16))
    error:          Mapped[str | None] = mapped_column(Text)
    created_at:     Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_reminder_events_month_client", "month_label", "client_id"),
    )
