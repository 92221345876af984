"""One-shot reminder job for deployments without the in-process scheduler.
Run via a platform cron at the dispatch time:
    python -m docnudge.scripts.run_reminders --channel all
"""

from __future__ import annotations

import argparse
import asyncio
import logging

import db
from config import settings
from docnudge.services.engine import build_engine
from docnudge.types.reminder_contract import Channel
from docnudge.utils.chat import ChatSession
from docnudge.utils.email import GraphMailer


async def main(channel: str = "all") -> dict:
    mailer = GraphMailer()
    session = ChatSession()
    engine = build_engine(db, mailer=mailer, chat_session=session)
    try:
        if channel == "all":
            summary = await engine.run_all()
        else:
            summary = await engine.run_channel(Channel(channel))
        return summary.model_dump(mode="json")
    finally:
        await session.stop()
        await mailer.aclose()
        await db.dispose_engine()


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send today's document reminders once.")
    parser.add_argument("--channel", choices=["all"] + [c.value for c in Channel], default="all")
    return parser.parse_args(argv)


if __name__ == "__main__":  # pragma: no cover
    logging.basicConfig(level=settings.LOG_LEVEL)
    args = _parse_args()
    print(f"[CRON] run_reminders ({args.channel}): job started")
    try:
        result = asyncio.run(main(args.channel))
        print(f"[CRON] run_reminders ({args.channel}): job completed successfully: {result}")
    except Exception as e:
        print(f"[CRON] run_reminders ({args.channel}): job failed: {e}")
        raise SystemExit(1)
