import logging
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, HTTPException, Request
from pydantic import ValidationError

import db
from config import settings
from docnudge.catalog import DocumentType
from docnudge.errors import UnknownChannel
from docnudge.services.engine import build_engine
from docnudge.services.ledger import LedgerUpdater
from docnudge.services.scheduler import ReminderScheduler
from docnudge.utils.chat import ChatSession
from docnudge.utils.email import GraphMailer

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
_LOGGER = logging.getLogger(__name__)

app = FastAPI(title="docnudge")


def build_scheduler(store, mailer: GraphMailer) -> ReminderScheduler:
    session = ChatSession()
    engine = build_engine(store, mailer=mailer, chat_session=session)
    return ReminderScheduler(engine, store, chat_session=session)


# DB connections are managed lazily; tables via Alembic migrations.
@app.on_event("startup")
async def startup_event():
    app.state.store = db
    app.state.mailer = GraphMailer()
    app.state.scheduler = build_scheduler(db, app.state.mailer)
    if settings.ENABLE_SCHEDULER:
        await app.state.scheduler.start()
    else:
        _LOGGER.info("Scheduler disabled via settings (ENABLE_SCHEDULER=false)")


@app.on_event("shutdown")
async def shutdown_event():
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        await scheduler.shutdown()
    mailer = getattr(app.state, "mailer", None)
    if mailer is not None:
        await mailer.aclose()
    await db.dispose_engine()


def _scheduler(request: Request) -> ReminderScheduler:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(503, "Scheduler not initialised")
    return scheduler


# --------------------------------------------
# Reminder control
# --------------------------------------------
@app.post("/v1/reminders/run/{channel}")
async def run_now(channel: str, request: Request):
    try:
        return await _scheduler(request).run_now(channel)
    except UnknownChannel as exc:
        raise HTTPException(404, str(exc)) from exc


@app.get("/v1/reminders/status")
async def reminder_status(request: Request):
    return _scheduler(request).get_status()


@app.post("/v1/reminders/reload")
async def reload_schedule(request: Request):
    scheduler = _scheduler(request)
    await scheduler.reload()
    return scheduler.get_status()


@app.post("/v1/reminders/reset")
async def reset_reminders(request: Request):
    store = request.app.state.store
    current = await store.get_active_settings()
    if current is None:
        raise HTTPException(409, "No reminder settings configured")
    cleared = await LedgerUpdater(store).reset_month(current.month_label)
    return {"month_label": current.month_label, "flags_cleared": cleared}


@app.post("/v1/chat/stop")
async def stop_chat(request: Request):
    await _scheduler(request).stop_chat()
    return {"status": "stopped"}


# --------------------------------------------
# Settings & ledger administration
# --------------------------------------------
@app.patch("/v1/settings")
async def patch_settings(request: Request, patch: Dict[str, Any] = Body(...)):
    store = request.app.state.store
    try:
        updated = await store.update_settings(patch)
    except (ValidationError, ValueError) as exc:
        raise HTTPException(422, str(exc)) from exc
    await _scheduler(request).reload()
    return updated.model_dump(mode="json")


@app.post("/v1/clients", status_code=201)
async def create_client(request: Request, payload: Dict[str, Any] = Body(...)):
    store = request.app.state.store
    try:
        client_id = await store.add_client(
            payload["name"],
            emails=payload.get("emails", []),
            chat_target=payload.get("chat_target"),
            document_types=payload.get("document_types", [t.value for t in DocumentType]),
        )
    except (KeyError, ValidationError, ValueError) as exc:
        raise HTTPException(422, f"Invalid client: {exc}") from exc
    return {"id": client_id}


@app.put("/v1/clients/{client_id}/receipts/{document_type}")
async def set_receipt(
    client_id: int,
    document_type: DocumentType,
    request: Request,
    payload: Dict[str, Any] = Body(default={}),
):
    store = request.app.state.store
    current = await store.get_active_settings()
    label = payload.get("month_label") or (current.month_label if current else None)
    if not label:
        raise HTTPException(409, "No month_label given and no reminder settings configured")
    ok = await store.set_received(client_id, document_type, label, bool(payload.get("received", True)))
    if not ok:
        raise HTTPException(404, f"No {document_type.value} record for client {client_id} in {label}")
    return {"client_id": client_id, "document_type": document_type.value, "month_label": label}


@app.get("/v1/reminders/events")
async def list_events(request: Request, month_label: Optional[str] = None, client_id: Optional[int] = None):
    store = request.app.state.store
    if not month_label:
        current = await store.get_active_settings()
        if current is None:
            raise HTTPException(409, "No month_label given and no reminder settings configured")
        month_label = current.month_label
    return await store.fetch_events(month_label, client_id)
