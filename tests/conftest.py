from datetime import date

import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool

import db
from docnudge.catalog import DocumentType, TIERS
from docnudge.types.reminder_contract import Client, ContactChannels, ReminderSettings

MONTH = "June 2024"
ALL_TYPES = tuple(DocumentType)


class FakeStore:
    """In-memory stand-in for the ``db`` module, single tracking month."""

    def __init__(self, settings=None):
        self.settings = settings
        self.clients = {}
        self.received = {}
        self.sent = {}
        self.events = []
        self.records_created = 0

    def add_client(self, client_id, name, *, emails=(), chat_target=None, types=ALL_TYPES):
        self.clients[client_id] = {
            "name": name,
            "emails": list(emails),
            "chat_target": chat_target,
            "types": set(types),
        }

    async def get_active_settings(self):
        return self.settings

    async def update_settings(self, patch):
        base = self.settings.model_dump() if self.settings else {}
        base.update(patch)
        self.settings = ReminderSettings.model_validate(base)
        return self.settings

    async def find_eligible(self, doc_type, tier, month_label):
        return [
            Client(id=cid, name=c["name"], month_label=month_label)
            for cid, c in sorted(self.clients.items())
            if doc_type in c["types"]
            and not self.received.get((cid, doc_type))
            and (cid, doc_type, tier) not in self.sent
        ]

    async def get_applicable_types(self, client_id):
        return set(self.clients[client_id]["types"])

    async def get_contact_channels(self, client_id):
        c = self.clients[client_id]
        return ContactChannels(emails=c["emails"], chat_target=c["chat_target"])

    async def mark_reminder_sent(self, client_id, doc_type, tier, month_label, timestamp):
        key = (client_id, doc_type, tier)
        if key in self.sent:
            return False
        self.sent[key] = timestamp
        return True

    async def reset_tier_sent_flags(self, month_label):
        cleared = len(self.sent)
        self.sent.clear()
        return cleared

    async def record_event(self, event):
        self.events.append(event)

    async def fetch_events(self, month_label, client_id=None):
        return [
            e.model_dump(mode="json")
            for e in self.events
            if e.month_label == month_label and (client_id is None or e.client_id == client_id)
        ]

    async def create_month_records(self, month_label):
        self.records_created += len(self.clients)
        return len(self.clients)

    async def cleanup_duplicate_records(self, month_label):
        return {"month_label": month_label, "records_removed": 0, "clients_with_duplicates": []}

    async def fetch_month_records(self, month_label):
        return [
            {
                "client_id": cid,
                "receipts": {t: bool(self.received.get((cid, t))) for t in c["types"]},
                "marks": {(t, n): (cid, t, n) in self.sent for t in c["types"] for n in TIERS},
            }
            for cid, c in sorted(self.clients.items())
        ]


class FakeMailer:
    configured = True

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    async def send(self, recipients, subject, body):
        if self.fail:
            raise RuntimeError("smtp exploded")
        self.sent.append((list(recipients), subject, body))


class FakeChatSession:
    configured = True
    connecting = False

    def __init__(self, ready=True, fail=False):
        self.ready = ready
        self.fail = fail
        self.sent = []
        self.stopped = False

    async def wait_ready(self, timeout):
        return self.ready

    async def send_group_message(self, group_id, text):
        if self.fail:
            raise RuntimeError("bridge offline")
        self.sent.append((group_id, text))

    async def stop(self):
        self.stopped = True
        self.ready = False


def make_settings(reminder_dates=None, due_dates=None, **kwargs) -> ReminderSettings:
    return ReminderSettings(
        month_label=kwargs.pop("month_label", MONTH),
        reminder_dates=reminder_dates or {},
        due_dates=due_dates or {},
        **kwargs,
    )


@pytest.fixture
def june_settings():
    """Primary filing and bank statement share their tier-1 date."""
    return make_settings(
        reminder_dates={
            DocumentType.PRIMARY_FILING: {1: date(2024, 6, 10), 2: date(2024, 6, 18)},
            DocumentType.BANK_STATEMENT: {1: date(2024, 6, 10), 2: None},
            DocumentType.WITHHOLDING_STATEMENT: {1: date(2024, 6, 12), 2: date(2024, 6, 18)},
        },
        due_dates={
            DocumentType.PRIMARY_FILING: date(2024, 6, 11),
            DocumentType.WITHHOLDING_STATEMENT: date(2024, 6, 20),
        },
    )


@pytest.fixture
def store(june_settings):
    s = FakeStore(june_settings)
    s.add_client(1, "Acme Traders", emails=["accounts@acme.test"], chat_target="grp-acme",
                 types=[DocumentType.PRIMARY_FILING, DocumentType.BANK_STATEMENT])
    s.add_client(2, "Bharat Steel", emails=["tax@bharat.test"], chat_target="grp-bharat")
    return s


@pytest_asyncio.fixture
async def sql_store():
    db.configure_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        # the single connection is shared by concurrent sessions; no rollback on checkin
        pool_reset_on_return=None,
        connect_args={"check_same_thread": False},
    )
    await db.create_all()
    yield db
    await db.dispose_engine()
