from datetime import date

from docnudge.catalog import DocumentType
from docnudge.services.composer import compose_chat, compose_email
from docnudge.types.reminder_contract import Client, DispatchTask

from conftest import MONTH

SIGNATURE = "Best regards,\nAccounts Team"
CLIENT = Client(id=1, name="Acme Traders", month_label=MONTH)


def _task(types, tier=1, due=date(2024, 6, 11)):
    return DispatchTask(client=CLIENT, document_types=types, tier=tier, due_date=due)


def test_gentle_email():
    msg = compose_email(_task([DocumentType.PRIMARY_FILING, DocumentType.BANK_STATEMENT]), date(2024, 6, 10), SIGNATURE)
    assert msg.subject == "Reminder to share GSTR 1 and Bank statement for June 2024 - Acme Traders"
    assert msg.body.startswith("Gentle reminder to share GSTR 1 and Bank statement for the month of June 2024.")
    assert "The last date for submission is 11 June 2024." in msg.body
    assert "OVERDUE" not in msg.body
    assert msg.body.endswith(SIGNATURE)


def test_urgent_email_for_tier_two():
    msg = compose_email(_task([DocumentType.WITHHOLDING_STATEMENT], tier=2), date(2024, 6, 10), SIGNATURE)
    assert msg.body.startswith("URGENT REMINDER to share TDS data")


def test_overdue_task_is_urgent_with_note():
    msg = compose_email(_task([DocumentType.PRIMARY_FILING]), date(2024, 6, 12), SIGNATURE)
    assert msg.body.startswith("URGENT REMINDER")
    assert "OVERDUE" in msg.body
    text = compose_chat(_task([DocumentType.PRIMARY_FILING]), date(2024, 6, 12), SIGNATURE)
    assert text.startswith("*URGENT REMINDER*")
    assert "*Note:* This submission is now OVERDUE." in text


def test_missing_due_date_asks_for_earliest_submission():
    msg = compose_email(_task([DocumentType.BANK_STATEMENT], due=None), date(2024, 6, 10), SIGNATURE)
    assert "Please share at the earliest." in msg.body
    text = compose_chat(_task([DocumentType.BANK_STATEMENT], due=None), date(2024, 6, 10), SIGNATURE)
    assert "*Due Date:*" not in text


def test_gentle_chat_lists_all_types():
    task = _task([DocumentType.PRIMARY_FILING, DocumentType.WITHHOLDING_STATEMENT, DocumentType.BANK_STATEMENT])
    text = compose_chat(task, date(2024, 6, 10), SIGNATURE)
    assert text.startswith("*Gentle Reminder*\n\nDear sir,")
    assert "pending GSTR 1, TDS data and Bank statement for June 2024." in text
    assert "*Due Date:* 11 June 2024" in text
    assert text.endswith(SIGNATURE)
