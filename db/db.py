"""
Async DB helpers for the document ledger.
Uses SQLAlchemy 2.0 + asyncpg driver – no raw SQL strings in app code.

The module itself is the ``store`` handed to the reminder engine: every
public coroutine below is part of that contract.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Iterable

from sqlalchemy import and_, delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from docnudge.catalog import DocumentType, TIERS
from docnudge.types.reminder_contract import (
    Client,
    ContactChannels,
    ReminderEvent,
    ReminderSettings,
)

from .models import (
    Base,
    ClientRow,
    DocumentReceipt,
    DocumentRecord,
    ReminderEventRow,
    ReminderMark,
    ReminderSettingsRow,
)

# ──────────────────────────────────────────────────────────────────────
# 1. Lazy engine / session factory
# ──────────────────────────────────────────────────────────────────────
_engine = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def _build_url() -> str:
    url = os.getenv("DATABASE_URL") or os.getenv("DATABASE_PUBLIC_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set")
    if url.startswith("sqlite"):
        return url
    if "+asyncpg" not in url:
        url = url.replace("postgres://", "postgresql+asyncpg://", 1).replace(
            "postgresql://", "postgresql+asyncpg://", 1
        )
    return url


def get_engine():
    global _engine
    if _engine is None:
        _engine = create_async_engine(_build_url(), pool_size=5, max_overflow=5)
    return _engine


def configure_engine(url: str, **kwargs):
    """Point the store at *url* (tests use in-memory SQLite)."""
    global _engine, _session_maker
    _engine = create_async_engine(url, **kwargs)
    _session_maker = None
    return _engine


def _sessions() -> async_sessionmaker[AsyncSession]:
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_maker


def get_session() -> AsyncGenerator[AsyncSession, None]:
    maker = _sessions()
    async def _session_scope():
        async with maker() as session:
            yield session
    return _session_scope()


def _insert(model):
    """Dialect ``INSERT`` supporting ``ON CONFLICT`` (Postgres in prod, SQLite in tests)."""
    if get_engine().dialect.name == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)


async def create_all():
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine():
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


# ──────────────────────────────────────────────────────────────────────
# 2. Settings
# ──────────────────────────────────────────────────────────────────────
def _settings_from_row(row: ReminderSettingsRow) -> ReminderSettings:
    return ReminderSettings.model_validate({
        "id": row.id,
        "month_label": row.month_label,
        "due_dates": row.due_dates or {},
        "reminder_dates": row.reminder_dates or {},
        "channel_enabled": row.channel_enabled or {},
        "dispatch_time": {
            "hour": row.dispatch_hour,
            "minute": row.dispatch_minute,
            "meridiem": row.dispatch_meridiem,
        },
    })


def _key(value) -> str:
    return str(getattr(value, "value", value))


async def _latest_settings_row(s: AsyncSession) -> ReminderSettingsRow | None:
    res = await s.execute(select(ReminderSettingsRow).order_by(ReminderSettingsRow.id.desc()).limit(1))
    return res.scalar_one_or_none()


async def get_active_settings() -> ReminderSettings | None:
    async with _sessions()() as s:
        row = await _latest_settings_row(s)
        return _settings_from_row(row) if row else None


async def update_settings(patch: dict[str, Any]) -> ReminderSettings:
    """Insert a new settings version: the latest one with *patch* applied.

    ``due_dates`` and ``channel_enabled`` merge per key, ``reminder_dates``
    merges per (type, tier); everything else is replaced.
    """
    async with _sessions()() as s:
        row = await _latest_settings_row(s)
        current = _settings_from_row(row).model_dump(mode="json", exclude={"id"}) if row else {}

        merged = dict(current)
        for key, value in patch.items():
            if key in ("due_dates", "channel_enabled"):
                merged[key] = {**current.get(key, {}), **{_key(k): v for k, v in (value or {}).items()}}
            elif key == "reminder_dates":
                dates = {t: {str(n): d for n, d in tiers.items()} for t, tiers in current.get(key, {}).items()}
                for doc_type, tiers in (value or {}).items():
                    dates.setdefault(_key(doc_type), {}).update(
                        {str(tier): d for tier, d in (tiers or {}).items()}
                    )
                merged[key] = dates
            else:
                merged[key] = value

        new = ReminderSettings.model_validate(merged)
        payload = new.model_dump(mode="json")
        hour, minute, meridiem = new.dispatch_time.hour, new.dispatch_time.minute, new.dispatch_time.meridiem
        row = ReminderSettingsRow(
            month_label=new.month_label,
            due_dates=payload["due_dates"],
            reminder_dates=payload["reminder_dates"],
            channel_enabled=payload["channel_enabled"],
            dispatch_hour=hour,
            dispatch_minute=minute,
            dispatch_meridiem=meridiem,
        )
        s.add(row)
        await s.commit()
        return new.model_copy(update={"id": row.id})


# ──────────────────────────────────────────────────────────────────────
# 3. Clients
# ──────────────────────────────────────────────────────────────────────
async def add_client(
    name: str,
    emails: Iterable[str] = (),
    chat_target: str | None = None,
    document_types: Iterable[DocumentType] = tuple(DocumentType),
) -> int:
    contacts = ContactChannels(emails=list(emails), chat_target=chat_target)
    row = ClientRow(
        name=name,
        emails=contacts.emails,
        chat_target=contacts.chat_target,
        document_types=[DocumentType(t).value for t in document_types],
    )
    async with _sessions()() as s:
        s.add(row)
        await s.flush()
        current = await _latest_settings_row(s)
        if current is not None:
            await _open_record(s, row, current.month_label)
        await s.commit()
        return row.id


async def get_contact_channels(client_id: int) -> ContactChannels:
    async with _sessions()() as s:
        row = await s.get(ClientRow, client_id)
        if row is None:
            return ContactChannels()
        return ContactChannels(emails=row.emails or [], chat_target=row.chat_target)


async def get_applicable_types(client_id: int) -> set[DocumentType]:
    known = {t.value for t in DocumentType}
    async with _sessions()() as s:
        row = await s.get(ClientRow, client_id)
        if row is None:
            return set()
        return {DocumentType(t) for t in (row.document_types or []) if t in known}


# ──────────────────────────────────────────────────────────────────────
# 4. Ledger queries
# ──────────────────────────────────────────────────────────────────────
async def _current_record(s: AsyncSession, client_id: int, month_label: str) -> DocumentRecord | None:
    """Newest record for (client, month); older duplicates are ignored."""
    res = await s.execute(
        select(DocumentRecord)
        .where(DocumentRecord.client_id == client_id, DocumentRecord.month_label == month_label)
        .order_by(DocumentRecord.created_at.desc(), DocumentRecord.id.desc())
        .limit(1)
    )
    return res.scalar_one_or_none()


async def find_eligible(doc_type: DocumentType, tier: int, month_label: str) -> list[Client]:
    """Clients whose *doc_type* applies, is not received and has no *tier* reminder yet."""
    doc_type = DocumentType(doc_type)
    async with _sessions()() as s:
        stmt = (
            select(
                DocumentRecord.id,
                DocumentRecord.client_id,
                ClientRow.name,
                DocumentReceipt.received,
                ReminderMark.sent,
            )
            .join(ClientRow, ClientRow.id == DocumentRecord.client_id)
            .outerjoin(
                DocumentReceipt,
                and_(
                    DocumentReceipt.record_id == DocumentRecord.id,
                    DocumentReceipt.document_type == doc_type.value,
                ),
            )
            .outerjoin(
                ReminderMark,
                and_(
                    ReminderMark.record_id == DocumentRecord.id,
                    ReminderMark.document_type == doc_type.value,
                    ReminderMark.tier == tier,
                ),
            )
            .where(DocumentRecord.month_label == month_label, ClientRow.active.is_(True))
            .order_by(DocumentRecord.client_id, DocumentRecord.created_at.desc(), DocumentRecord.id.desc())
        )
        res = await s.execute(stmt)

        seen: set[int] = set()
        clients: list[Client] = []
        for record_id, client_id, name, received, sent in res.all():
            if client_id in seen:
                continue
            seen.add(client_id)
            # no receipt row means the type does not apply to this client
            if received is None or received or sent:
                continue
            clients.append(Client(id=client_id, name=name, month_label=month_label, record_id=record_id))
        return clients


async def mark_reminder_sent(
    client_id: int,
    doc_type: DocumentType,
    tier: int,
    month_label: str,
    timestamp: datetime,
) -> bool:
    """Set one tier-sent flag. Returns False when it was already set.

    A single upsert, so two channels marking the same flag at once both
    succeed and only the first one reports a change.
    """
    doc_type = DocumentType(doc_type)
    async with _sessions()() as s:
        record = await _current_record(s, client_id, month_label)
        if record is None:
            return False
        stmt = _insert(ReminderMark).values(
            record_id=record.id, document_type=doc_type.value, tier=tier, sent=True, sent_at=timestamp,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ReminderMark.record_id, ReminderMark.document_type, ReminderMark.tier],
            set_={"sent": True, "sent_at": timestamp},
            where=ReminderMark.sent.is_(False),
        )
        res = await s.execute(stmt)
        await s.commit()
        return bool(res.rowcount)


async def reset_tier_sent_flags(month_label: str) -> int:
    records = select(DocumentRecord.id).where(DocumentRecord.month_label == month_label)
    async with _sessions()() as s:
        res = await s.execute(
            update(ReminderMark)
            .where(ReminderMark.record_id.in_(records), ReminderMark.sent.is_(True))
            .values(sent=False, sent_at=None)
        )
        await s.commit()
        return res.rowcount or 0


async def set_received(
    client_id: int,
    doc_type: DocumentType,
    month_label: str,
    received: bool = True,
    when: datetime | None = None,
) -> bool:
    """Record that a document arrived (or un-record it). False if not applicable."""
    doc_type = DocumentType(doc_type)
    async with _sessions()() as s:
        record = await _current_record(s, client_id, month_label)
        if record is None:
            return False
        res = await s.execute(
            select(DocumentReceipt).where(
                DocumentReceipt.record_id == record.id,
                DocumentReceipt.document_type == doc_type.value,
            )
        )
        receipt = res.scalar_one_or_none()
        if receipt is None:
            return False
        receipt.received = received
        receipt.received_date = (when or datetime.now(timezone.utc)) if received else None
        await s.commit()
        return True


# ──────────────────────────────────────────────────────────────────────
# 5. Event log
# ──────────────────────────────────────────────────────────────────────
async def record_event(event: ReminderEvent) -> None:
    row = ReminderEventRow(
        channel=event.channel.value,
        client_id=event.client_id,
        target=event.target,
        subject=event.subject,
        content=event.content,
        document_types=[t.value for t in event.document_types],
        tier=event.tier,
        month_label=event.month_label,
        outcome=event.outcome.value,
        error=event.error,
        created_at=event.created_at,
    )
    async with _sessions()() as s:
        s.add(row)
        await s.commit()


async def fetch_events(month_label: str, client_id: int | None = None) -> list[dict]:
    async with _sessions()() as s:
        stmt = select(ReminderEventRow).where(ReminderEventRow.month_label == month_label)
        if client_id is not None:
            stmt = stmt.where(ReminderEventRow.client_id == client_id)
        res = await s.execute(stmt.order_by(ReminderEventRow.id))
        return [
            {
                "channel": e.channel,
                "client_id": e.client_id,
                "target": e.target,
                "subject": e.subject,
                "document_types": e.document_types,
                "tier": e.tier,
                "outcome": e.outcome,
                "error": e.error,
            }
            for e in res.scalars()
        ]


# ──────────────────────────────────────────────────────────────────────
# 6. Month rollover, cleanup and reporting
# ──────────────────────────────────────────────────────────────────────
async def _open_record(s: AsyncSession, client: ClientRow, month_label: str) -> DocumentRecord:
    """Ledger record for *client* in *month_label*, with a receipt row per applicable type."""
    record = DocumentRecord(client_id=client.id, month_label=month_label)
    s.add(record)
    await s.flush()
    for doc_type in client.document_types or []:
        s.add(DocumentReceipt(record_id=record.id, document_type=doc_type))
    return record


async def create_month_records(month_label: str) -> int:
    """One record per active client for *month_label*, with a receipt row per applicable type."""
    async with _sessions()() as s:
        existing = set(
            (await s.execute(
                select(DocumentRecord.client_id).where(DocumentRecord.month_label == month_label)
            )).scalars()
        )
        clients = (await s.execute(
            select(ClientRow).where(ClientRow.active.is_(True)).order_by(ClientRow.id)
        )).scalars().all()

        created = 0
        for client in clients:
            if client.id in existing:
                continue
            await _open_record(s, client, month_label)
            created += 1
        await s.commit()
        return created


async def cleanup_duplicate_records(month_label: str) -> dict:
    """Keep the newest record per client for *month_label* and delete the rest."""
    async with _sessions()() as s:
        res = await s.execute(
            select(DocumentRecord.id, DocumentRecord.client_id)
            .where(DocumentRecord.month_label == month_label)
            .order_by(DocumentRecord.client_id, DocumentRecord.created_at.desc(), DocumentRecord.id.desc())
        )
        kept: set[int] = set()
        stale: list[int] = []
        affected: set[int] = set()
        for record_id, client_id in res.all():
            if client_id in kept:
                stale.append(record_id)
                affected.add(client_id)
            else:
                kept.add(client_id)

        if stale:
            await s.execute(delete(ReminderMark).where(ReminderMark.record_id.in_(stale)))
            await s.execute(delete(DocumentReceipt).where(DocumentReceipt.record_id.in_(stale)))
            await s.execute(delete(DocumentRecord).where(DocumentRecord.id.in_(stale)))
            await s.commit()

        return {
            "month_label": month_label,
            "records_removed": len(stale),
            "clients_with_duplicates": sorted(affected),
        }


async def fetch_month_records(month_label: str) -> list[dict]:
    """Every record of *month_label* with its receipts and sent marks."""
    async with _sessions()() as s:
        records = (await s.execute(
            select(DocumentRecord).where(DocumentRecord.month_label == month_label).order_by(DocumentRecord.id)
        )).scalars().all()
        ids = [r.id for r in records]
        out = {r.id: {"client_id": r.client_id, "record_id": r.id, "receipts": {}, "marks": {}} for r in records}
        if not ids:
            return []

        known = {t.value for t in DocumentType}
        for receipt in (await s.execute(
            select(DocumentReceipt).where(DocumentReceipt.record_id.in_(ids))
        )).scalars():
            if receipt.document_type in known:
                out[receipt.record_id]["receipts"][DocumentType(receipt.document_type)] = receipt.received
        for mark in (await s.execute(
            select(ReminderMark).where(ReminderMark.record_id.in_(ids))
        )).scalars():
            if mark.document_type in known and mark.tier in TIERS:
                out[mark.record_id]["marks"][(DocumentType(mark.document_type), mark.tier)] = mark.sent
        return list(out.values())
