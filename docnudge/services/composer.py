"""Message rendering for reminder dispatch tasks. No I/O."""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from docnudge.catalog import DocumentType, label, tier_spec
from docnudge.types.reminder_contract import DispatchTask, EmailMessage


def _join(types: List[DocumentType]) -> str:
    names = [label(t) for t in types]
    if len(names) == 1:
        return names[0]
    return ", ".join(names[:-1]) + " and " + names[-1]


def _format_date(value: date) -> str:
    return value.strftime("%d %B %Y")


def is_overdue(task: DispatchTask, today: date) -> bool:
    return task.due_date is not None and today > task.due_date


def is_urgent(task: DispatchTask, today: date) -> bool:
    return tier_spec(task.tier).urgent or is_overdue(task, today)


def _due_line(due_date: Optional[date]) -> str:
    if due_date is None:
        return "Please share at the earliest."
    return f"The last date for submission is {_format_date(due_date)}."


def compose_email(task: DispatchTask, today: date, signature: str) -> EmailMessage:
    docs = _join(task.document_types)
    month = task.client.month_label
    tone = "URGENT REMINDER" if is_urgent(task, today) else "Gentle reminder"

    lines = [
        f"{tone} to share {docs} for the month of {month}.",
        "",
        _due_line(task.due_date),
    ]
    if is_overdue(task, today):
        lines += ["", "Note: this submission is now OVERDUE."]
    lines += [
        "",
        "Act now to avoid late fees. Ignore, if data is already provided.",
        "",
        "Need assistance? Contact us ASAP.",
        "",
        "Thank you for your prompt attention.",
        "",
        signature,
    ]
    return EmailMessage(
        subject=f"Reminder to share {docs} for {month} - {task.client.name}",
        body="\n".join(lines),
    )


def compose_chat(task: DispatchTask, today: date, signature: str) -> str:
    docs = _join(task.document_types)
    month = task.client.month_label
    if is_urgent(task, today):
        intro = (
            "*URGENT REMINDER*\n\nDear sir,\n\n"
            f"This is an urgent reminder to submit your pending {docs} for {month} immediately."
        )
    else:
        intro = (
            "*Gentle Reminder*\n\nDear sir,\n\n"
            f"This is a gentle reminder to submit your pending {docs} for {month}."
        )

    parts = [intro]
    if task.due_date is not None:
        parts.append(f"*Due Date:* {_format_date(task.due_date)}")
    if is_overdue(task, today):
        parts.append("*Note:* This submission is now OVERDUE.")
    parts += [
        "Act now to avoid late fees. Please ignore if documents have already been provided.",
        "Need assistance? Contact us ASAP.",
        "Thank you for your prompt attention.",
        signature,
    ]
    return "\n\n".join(parts)
