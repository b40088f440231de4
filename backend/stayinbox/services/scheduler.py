# backend/stayinbox/services/scheduler.py
"""
Periodic mailbox sync (APScheduler).

Disabled unless SYNC_INTERVAL_SECONDS > 0. The blocking sync pass runs in a
worker thread so the event loop stays responsive.

Usage (FastAPI lifespan):
    start_scheduler(interval_seconds=settings.SYNC_INTERVAL_SECONDS)
    ...
    shutdown_scheduler()
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger("stayinbox.scheduler")
logger.setLevel(logging.INFO)

if not logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s [SCHEDULER] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

_scheduler: Optional[AsyncIOScheduler] = None

JOB_ID = "mailbox_sync_job"


def _run_sync_once() -> None:
    from stayinbox.core.config import get_settings
    from stayinbox.core.errors import StayInboxError
    from stayinbox.db.session import SessionLocal
    from stayinbox.services.mailbox_sync_service import MailboxSyncService

    settings = get_settings()
    started = datetime.now(timezone.utc)
    db = SessionLocal()
    try:
        with httpx.Client(timeout=30.0) as http:
            result = MailboxSyncService(db, settings, http=http).sync(settings.MAILBOX_ADDRESS or None)
        logger.info(
            "mailbox sync done in %.1fs: %d messages, %d conversations, %d errors",
            (datetime.now(timezone.utc) - started).total_seconds(),
            result.synced_count,
            result.conversation_count,
            len(result.errors),
        )
    except StayInboxError as exc:
        # auth / provider failure aborts this pass; the next tick retries
        logger.error("mailbox sync failed: %s", exc)
        db.rollback()
    finally:
        db.close()


async def mailbox_sync_job() -> None:
    await asyncio.to_thread(_run_sync_once)


def start_scheduler(interval_seconds: int) -> None:
    global _scheduler

    if interval_seconds <= 0:
        logger.info("periodic sync disabled (SYNC_INTERVAL_SECONDS=%s)", interval_seconds)
        return
    if _scheduler is not None:
        logger.warning("scheduler already running")
        return

    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        mailbox_sync_job,
        trigger=IntervalTrigger(seconds=interval_seconds),
        id=JOB_ID,
        name="Mailbox sync + reservation extraction",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    _scheduler.start()
    logger.info("scheduler started: mailbox sync every %ss, next run %s", interval_seconds, _scheduler.get_job(JOB_ID).next_run_time)


def shutdown_scheduler() -> None:
    global _scheduler

    if _scheduler is None:
        return

    _scheduler.shutdown(wait=False)
    _scheduler = None
    logger.info("scheduler stopped")


def get_scheduler() -> Optional[AsyncIOScheduler]:
    return _scheduler
