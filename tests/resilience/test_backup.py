import pytest

from localmcp_resilience.resilience.backup import BackupOutcome, BackupScheduler
from localmcp_resilience.resilience.errors import BackupError
from localmcp_resilience.resilience.events import BackupCompleted, BackupFailed

pytestmark = pytest.mark.asyncio


async def test_successful_backup_emits_completed(bus, recorder):
    scheduler = BackupScheduler(bus)

    async def snapshot_lessons():
        return "/backups/lessons.db"

    scheduler.register("lessons-db", snapshot_lessons)
    records = await scheduler.run_cycle()

    assert len(records) == 1
    record = records[0]
    assert record.outcome is BackupOutcome.SUCCEEDED
    assert record.source_config_id == "lessons-db"
    assert record.result == "/backups/lessons.db"
    assert [e.backup_id for e in recorder.of(BackupCompleted)] == [record.id]


async def test_failing_provider_is_isolated(bus, recorder):
    scheduler = BackupScheduler(bus)
    ran = []

    def broken():
        raise OSError("disk full")

    scheduler.register("config", broken)
    scheduler.register("cache", lambda: ran.append("cache") or {"files": 3})

    records = await scheduler.run_cycle()

    assert [r.outcome for r in records] == [BackupOutcome.FAILED, BackupOutcome.SUCCEEDED]
    assert ran == ["cache"]
    failed = recorder.of(BackupFailed)
    assert len(failed) == 1
    assert isinstance(failed[0].error, BackupError)
    assert isinstance(failed[0].error.__cause__, OSError)
    assert records[0].error == "OSError: disk full"


async def test_record_ids_are_unique(bus):
    scheduler = BackupScheduler(bus)
    scheduler.register("a", lambda: None)
    scheduler.register("b", lambda: None)

    records = await scheduler.run_cycle() + await scheduler.run_cycle()

    assert len({r.id for r in records}) == 4


async def test_unregister_provider(bus):
    scheduler = BackupScheduler(bus)
    scheduler.register("a", lambda: None)

    assert scheduler.unregister("a") is True
    assert scheduler.config_ids == []
    assert await scheduler.run_cycle() == []
