import db
from docnudge.scripts import run_reminders
from docnudge.services import rollover as rollover_service
from docnudge.workers import ledger as ledger_worker


def _patch(monkeypatch):
    calls = []

    async def fake_cleanup(store, month_label=None):
        calls.append(("cleanup", month_label))
        return {"month_label": month_label, "records_removed": 3, "clients_with_duplicates": [1]}

    async def fake_rollover(store, month_label=None):
        calls.append(("rollover", month_label))
        return 5

    async def fake_dispose():
        calls.append(("dispose", None))

    monkeypatch.setattr(rollover_service, "cleanup_duplicates", fake_cleanup)
    monkeypatch.setattr(rollover_service, "rollover", fake_rollover)
    monkeypatch.setattr(db, "dispose_engine", fake_dispose)
    return calls


def test_cleanup_task_runs_and_disposes_engine(monkeypatch):
    calls = _patch(monkeypatch)

    result = ledger_worker.cleanup_duplicates.apply(args=["June 2024"]).get()

    assert result["records_removed"] == 3
    assert calls == [("cleanup", "June 2024"), ("dispose", None)]


def test_rollover_task(monkeypatch):
    calls = _patch(monkeypatch)

    assert ledger_worker.rollover_month.apply(args=["July 2024"]).get() == 5
    assert calls[0] == ("rollover", "July 2024")


def test_beat_schedules_nightly_cleanup():
    from docnudge.celery_app import celery_app

    entry = celery_app.conf.beat_schedule["cleanup-duplicate-records"]
    assert entry["task"] == ledger_worker.cleanup_duplicates.name


def test_cron_script_arguments():
    assert run_reminders._parse_args([]).channel == "all"
    assert run_reminders._parse_args(["--channel", "chat"]).channel == "chat"
