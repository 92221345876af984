from datetime import date

import pytest
from pydantic import ValidationError

from docnudge.catalog import DocumentType, ordered, tier_spec
from docnudge.types.reminder_contract import (
    Client,
    ContactChannels,
    DispatchTask,
    DispatchTime,
    ReminderSettings,
)

from conftest import MONTH, make_settings


@pytest.mark.parametrize(
    "hour, minute, meridiem, expected",
    [(9, 0, "AM", (9, 0)), (12, 15, "AM", (0, 15)), (12, 0, "PM", (12, 0)), (6, 30, "pm", (18, 30))],
)
def test_dispatch_time_to_24h(hour, minute, meridiem, expected):
    assert DispatchTime(hour=hour, minute=minute, meridiem=meridiem).to_24h() == expected


def test_dispatch_time_cron_expression():
    t = DispatchTime(hour=6, minute=30, meridiem="PM")
    assert t.cron_expression() == "30 18 * * *"
    assert t.cron_expression(day_of_month="1") == "30 18 1 * *"


def test_default_dispatch_time_is_nine_am():
    assert make_settings().dispatch_time.cron_expression() == "0 9 * * *"


def test_settings_reject_unknown_tier():
    with pytest.raises(ValidationError):
        make_settings(reminder_dates={DocumentType.PRIMARY_FILING: {3: date(2024, 6, 1)}})


def test_settings_parse_json_shaped_payload():
    s = ReminderSettings.model_validate({
        "month_label": " June 2024 ",
        "reminder_dates": {"bank_statement": {"1": "2024-06-10", "2": None}},
        "channel_enabled": {"email": False},
    })
    assert s.month_label == MONTH
    assert s.reminder_date(DocumentType.BANK_STATEMENT, 1) == date(2024, 6, 10)
    assert s.reminder_date(DocumentType.BANK_STATEMENT, 2) is None
    assert s.reminder_date(DocumentType.PRIMARY_FILING, 1) is None
    assert not s.is_enabled("email")
    assert s.is_enabled("chat")


def test_urgency_due_date_prefers_earliest_own_date(june_settings):
    assert june_settings.urgency_due_date(
        [DocumentType.PRIMARY_FILING, DocumentType.WITHHOLDING_STATEMENT]
    ) == date(2024, 6, 11)


def test_urgency_due_date_falls_back_in_registry_order():
    s = make_settings(due_dates={DocumentType.WITHHOLDING_STATEMENT: date(2024, 6, 20)})
    assert s.urgency_due_date([DocumentType.BANK_STATEMENT]) == date(2024, 6, 20)
    s = make_settings(due_dates={
        DocumentType.WITHHOLDING_STATEMENT: date(2024, 6, 20),
        DocumentType.PRIMARY_FILING: date(2024, 6, 11),
    })
    assert s.urgency_due_date([DocumentType.BANK_STATEMENT]) == date(2024, 6, 11)
    assert make_settings().urgency_due_date([DocumentType.BANK_STATEMENT]) is None


def test_dispatch_task_marks_default_to_its_tier():
    client = Client(id=1, name="Acme", month_label=MONTH)
    task = DispatchTask(client=client, document_types=[DocumentType.BANK_STATEMENT], tier=2)
    assert task.marks == [(DocumentType.BANK_STATEMENT, 2)]
    with pytest.raises(ValidationError):
        DispatchTask(client=client, document_types=[], tier=1)
    with pytest.raises(ValidationError):
        DispatchTask(client=client, document_types=[DocumentType.BANK_STATEMENT], tier=7)


def test_contact_channels_cleanup():
    c = ContactChannels(emails=["a@x.test", " ", ""], chat_target="  ")
    assert c.emails == ["a@x.test"]
    assert c.chat_target is None
    with pytest.raises(ValidationError):
        ContactChannels(emails=["1@x", "2@x", "3@x", "4@x"])


def test_catalog_helpers():
    assert ordered([DocumentType.BANK_STATEMENT, DocumentType.PRIMARY_FILING, DocumentType.BANK_STATEMENT]) == [
        DocumentType.PRIMARY_FILING,
        DocumentType.BANK_STATEMENT,
    ]
    assert tier_spec(2).urgent
    with pytest.raises(ValueError):
        tier_spec(0)


@pytest.mark.parametrize("label", ["2024-06", "Juin 2024", "June", ""])
def test_month_label_must_name_a_calendar_month(label):
    with pytest.raises(ValidationError):
        make_settings(month_label=label)


def test_month_label_is_normalised():
    assert make_settings(month_label="  june 2024").month_label == MONTH
