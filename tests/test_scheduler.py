"""Tests for the periodic sync scheduler wiring."""

import asyncio

from stayinbox.services import scheduler


def test_disabled_when_interval_is_zero():
    scheduler.start_scheduler(interval_seconds=0)

    assert scheduler.get_scheduler() is None


def test_start_and_shutdown():
    async def run():
        scheduler.start_scheduler(interval_seconds=300)
        try:
            job = scheduler.get_scheduler().get_job(scheduler.JOB_ID)
            assert job is not None
            assert job.trigger.interval.total_seconds() == 300
        finally:
            scheduler.shutdown_scheduler()

    asyncio.run(run())

    assert scheduler.get_scheduler() is None


def test_sync_tick_closes_its_http_client(monkeypatch):
    from stayinbox.services.mailbox_sync_service import MailboxSyncService, SyncResult

    clients = []

    def fake_sync(self, mailbox=None):
        clients.append(self.http)
        return SyncResult(mailbox=mailbox or "")

    monkeypatch.setattr(MailboxSyncService, "sync", fake_sync)

    scheduler._run_sync_once()

    (client,) = clients
    assert client.is_closed
