import asyncio
from datetime import date

import pytest

from docnudge.catalog import DocumentType
from docnudge.errors import UnknownChannel
from docnudge.services.dispatch import ChatDispatcher, EmailDispatcher
from docnudge.services.engine import ReminderEngine
from docnudge.services.ledger import LedgerUpdater
from docnudge.types.reminder_contract import Channel, ChannelStatus, EventOutcome

from conftest import FakeChatSession, FakeMailer, FakeStore, make_settings

P, B, W = DocumentType.PRIMARY_FILING, DocumentType.BANK_STATEMENT, DocumentType.WITHHOLDING_STATEMENT
JUNE_10 = date(2024, 6, 10)


def _engine(store, mailer=None, session=None):
    return ReminderEngine(
        store,
        {
            Channel.EMAIL: EmailDispatcher(store, mailer or FakeMailer(), delay_range=(0, 0)),
            Channel.CHAT: ChatDispatcher(store, session or FakeChatSession(), delay_range=(0, 0)),
        },
        clock=lambda: JUNE_10,
    )


@pytest.mark.asyncio
async def test_shared_tier_date_scenario(store):
    engine = _engine(store)

    plan = await engine.plan()
    acme = [t for t in plan.tasks if t.client.id == 1]
    assert len(acme) == 1
    assert acme[0].document_types == [P, B]
    assert acme[0].tier == 1

    summary = await engine.run_all()
    assert summary.channels[Channel.EMAIL].sent == 2
    assert summary.channels[Channel.CHAT].sent == 2
    assert (1, P, 1) in store.sent and (1, B, 1) in store.sent

    rerun = await engine.plan()
    assert [t for t in rerun.tasks if t.client.id == 1] == []
    assert rerun.tasks == []


@pytest.mark.asyncio
async def test_channels_are_independent(store):
    mailer = FakeMailer(fail=True)
    session = FakeChatSession()
    engine = _engine(store, mailer=mailer, session=session)
    candidates = len((await engine.plan()).tasks)

    summary = await engine.run_all()

    email, chat = summary.channels[Channel.EMAIL], summary.channels[Channel.CHAT]
    assert email.failed == candidates and email.sent == 0
    assert chat.sent == candidates and chat.failed == 0
    assert len(session.sent) == candidates
    assert set(store.sent) == {(1, P, 1), (1, B, 1), (2, P, 1), (2, B, 1)}


@pytest.mark.asyncio
async def test_a_crashing_channel_does_not_stop_the_other(store):
    engine = _engine(store)

    async def boom(*args, **kwargs):
        raise RuntimeError("dispatcher bug")

    engine.dispatchers[Channel.EMAIL].run = boom
    summary = await engine.run_all()

    assert summary.channels[Channel.EMAIL].status is ChannelStatus.ERROR
    assert summary.channels[Channel.CHAT].sent == 2


@pytest.mark.asyncio
async def test_disabled_email_produces_no_email_activity(store):
    store.settings = store.settings.model_copy(update={"channel_enabled": {Channel.EMAIL: False}})
    mailer = FakeMailer()
    engine = _engine(store, mailer=mailer)

    summary = await engine.run_all()

    assert summary.channels[Channel.EMAIL].status is ChannelStatus.DISABLED
    assert mailer.sent == []
    assert all(e.channel is Channel.CHAT for e in store.events)
    assert summary.channels[Channel.CHAT].sent == 2


@pytest.mark.asyncio
async def test_not_a_reminder_day_is_idle(store):
    engine = _engine(store)

    summary = await engine.run_all(date(2024, 6, 11))

    assert {s.status for s in summary.channels.values()} == {ChannelStatus.IDLE}
    assert store.events == []


@pytest.mark.asyncio
async def test_no_settings_means_no_actions():
    store = FakeStore(None)
    store.add_client(1, "Acme")
    summary = await _engine(store).run_all()
    assert summary.month_label is None
    assert all(s.status is ChannelStatus.IDLE for s in summary.channels.values())


@pytest.mark.asyncio
async def test_received_documents_are_not_chased(store):
    store.received[(1, P)] = True
    engine = _engine(store)

    plan = await engine.plan()

    acme = [t for t in plan.tasks if t.client.id == 1]
    assert [t.document_types for t in acme] == [[B]]


@pytest.mark.asyncio
async def test_exempted_type_is_dropped(store):
    async def only_bank(client_id):
        return {B}

    store.get_applicable_types = only_bank
    plan = await _engine(store).plan()
    assert {tuple(t.document_types) for t in plan.tasks} == {(B,)}


@pytest.mark.asyncio
async def test_run_channel_respects_the_reminder_day_gate(store):
    engine = _engine(store)

    idle = await engine.run_channel("email", date(2024, 6, 9))
    assert idle.status is ChannelStatus.IDLE

    summary = await engine.run_channel(Channel.CHAT)
    assert summary.sent == 2
    assert all(e.outcome is EventOutcome.SENT for e in store.events)

    with pytest.raises(UnknownChannel):
        await engine.run_channel("fax")


@pytest.mark.asyncio
async def test_reset_makes_clients_eligible_again(store):
    store.received[(2, W)] = True
    engine = _engine(store)
    await engine.run_all()
    assert (await engine.plan()).tasks == []

    cleared = await LedgerUpdater(store).reset_month("June 2024")

    assert cleared == 4
    assert len((await engine.plan()).tasks) == 2
    assert store.received[(2, W)] is True


@pytest.mark.asyncio
async def test_mark_sent_is_idempotent(store):
    ledger = LedgerUpdater(store)
    assert await ledger.mark_sent(1, P, 1, "June 2024")
    first = dict(store.sent)
    assert not await ledger.mark_sent(1, P, 1, "June 2024")
    assert store.sent == first
    with pytest.raises(ValueError):
        await ledger.mark_sent(1, P, 5, "June 2024")


@pytest.mark.asyncio
async def test_tier_two_day_groups_primary_and_withholding():
    store = FakeStore(make_settings(
        reminder_dates={P: {2: date(2024, 6, 18)}, W: {2: date(2024, 6, 18)}},
    ))
    store.add_client(5, "Chola Exports", emails=["c@chola.test"], chat_target="grp-chola")
    engine = _engine(store)

    plan = await engine.plan(date(2024, 6, 18))

    assert [(t.document_types, t.tier) for t in plan.tasks] == [([P, W], 2)]


@pytest.mark.asyncio
async def test_concurrent_channels_share_flags_on_sql_store(sql_store):
    await sql_store.update_settings({
        "month_label": "June 2024",
        "reminder_dates": {"primary_filing": {"1": "2024-06-10"}, "bank_statement": {"1": "2024-06-10"}},
    })
    await sql_store.add_client("Acme Traders", emails=["a@acme.test"], chat_target="grp-acme",
                               document_types=[P, B])
    await sql_store.add_client("Bharat Steel", emails=["t@bharat.test"], chat_target="grp-bharat")

    class YieldingMailer(FakeMailer):
        async def send(self, recipients, subject, body):
            await asyncio.sleep(0)
            await super().send(recipients, subject, body)

    class YieldingChat(FakeChatSession):
        async def send_group_message(self, group_id, text):
            await asyncio.sleep(0)
            await super().send_group_message(group_id, text)

    mailer, session = YieldingMailer(), YieldingChat()
    summary = await _engine(sql_store, mailer=mailer, session=session).run_all()

    email, chat = summary.channels[Channel.EMAIL], summary.channels[Channel.CHAT]
    assert (email.sent, email.failed) == (2, 0)
    assert (chat.sent, chat.failed) == (2, 0)
    assert len(mailer.sent) == 2 and len(session.sent) == 2

    events = await sql_store.fetch_events("June 2024")
    assert len(events) == 4
    assert {e["outcome"] for e in events} == {"sent"}
    assert await sql_store.find_eligible(P, 1, "June 2024") == []
    records = await sql_store.fetch_month_records("June 2024")
    assert all(r["marks"][(P, 1)] and r["marks"][(B, 1)] for r in records)
