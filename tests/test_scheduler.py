import asyncio
from typing import List

import pytest

from core.entities import ImportRunResult, JobStatus
from core.errors import JobAlreadyRunning, UnknownCategory, UnknownJob
from services.config import JobConfig
from services.scheduler import MANUAL_JOB, Scheduler
from workflows.base import ImportWorkflow


class GatedWorkflow(ImportWorkflow):
    """
    Records every run; runs block until the gate opens. Categories in fail_on raise.
    """

    def __init__(self, categories=("Science", "World")):
        self._categories = list(categories)
        self.calls: List[tuple] = []
        self.gate = asyncio.Event()
        self.gate.set()
        self.started = asyncio.Event()
        self.fail_on = set()

    @property
    def categories(self) -> List[str]:
        return list(self._categories)

    async def run(self, category: str, max_articles: int) -> ImportRunResult:
        self.calls.append((category, max_articles))
        self.started.set()
        await self.gate.wait()
        if category in self.fail_on:
            raise RuntimeError(f"{category} blew up")
        return ImportRunResult(category=category, imported=1)


def _jobs():
    return [
        JobConfig(name="every_2h", categories=["Science", "World"], interval_minutes=120, max_articles_per_category=8),
        JobConfig(name="backup", categories=["Science"], interval_minutes=360, max_articles_per_category=5, enabled=False),
    ]


@pytest.mark.asyncio
async def test_tick_runs_every_category_in_order():
    workflow = GatedWorkflow()
    scheduler = Scheduler(workflow, _jobs())

    results = await scheduler.tick("every_2h")

    assert [r.category for r in results] == ["Science", "World"]
    assert workflow.calls == [("Science", 8), ("World", 8)]
    status = await scheduler.get_status()
    assert status["every_2h"].is_running is False
    assert status["every_2h"].last_run_at is not None
    assert [r.category for r in status["every_2h"].last_results] == ["Science", "World"]


@pytest.mark.asyncio
async def test_overlapping_tick_is_skipped():
    workflow = GatedWorkflow()
    workflow.gate.clear()
    scheduler = Scheduler(workflow, _jobs())

    first = asyncio.create_task(scheduler.tick("every_2h"))
    await asyncio.wait_for(workflow.started.wait(), timeout=1)

    assert await scheduler.tick("every_2h") is None
    with pytest.raises(JobAlreadyRunning):
        await scheduler.trigger_job("every_2h")

    workflow.gate.set()
    results = await first

    assert len(results) == 2
    assert workflow.calls == [("Science", 8), ("World", 8)]
    assert (await scheduler.get_status())["every_2h"].is_running is False


@pytest.mark.asyncio
async def test_manual_trigger_rejected_while_running():
    workflow = GatedWorkflow()
    workflow.gate.clear()
    scheduler = Scheduler(workflow, _jobs())

    first = asyncio.create_task(scheduler.trigger_import(["Science"], 3))
    await asyncio.wait_for(workflow.started.wait(), timeout=1)

    with pytest.raises(JobAlreadyRunning):
        await scheduler.trigger_import(["World"], 3)

    workflow.gate.set()
    await first
    assert workflow.calls == [("Science", 3)]
    assert (await scheduler.get_status())[MANUAL_JOB].last_results[0].category == "Science"


@pytest.mark.asyncio
async def test_unknown_category_rejected_before_running():
    workflow = GatedWorkflow()
    scheduler = Scheduler(workflow, _jobs())

    with pytest.raises(UnknownCategory):
        await scheduler.trigger_import(["Science", "Astrology"], 3)

    assert workflow.calls == []
    assert MANUAL_JOB not in await scheduler.get_status()


@pytest.mark.asyncio
async def test_unknown_job():
    scheduler = Scheduler(GatedWorkflow(), _jobs())

    with pytest.raises(UnknownJob):
        await scheduler.trigger_job("nightly")
    with pytest.raises(UnknownJob):
        await scheduler.tick("nightly")


@pytest.mark.asyncio
async def test_failing_category_is_recorded_and_flag_cleared():
    workflow = GatedWorkflow()
    workflow.fail_on.add("Science")
    scheduler = Scheduler(workflow, _jobs())

    results = await scheduler.trigger_job("every_2h")

    assert results[0].errors == 1
    assert "blew up" in results[0].run_error
    assert results[1].imported == 1
    assert (await scheduler.get_status())["every_2h"].is_running is False

    workflow.fail_on.clear()
    assert len(await scheduler.trigger_job("every_2h")) == 2


@pytest.mark.asyncio
async def test_status_is_a_snapshot():
    scheduler = Scheduler(GatedWorkflow(), _jobs())
    await scheduler.tick("every_2h")

    snapshot = await scheduler.get_status()
    snapshot["every_2h"].is_running = True
    snapshot["every_2h"].last_results.clear()

    status = await scheduler.get_status()
    assert status["every_2h"].is_running is False
    assert len(status["every_2h"].last_results) == 2


@pytest.mark.asyncio
async def test_start_and_stop_timers():
    sleeps: List[float] = []
    never = asyncio.Event()

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        if len(sleeps) > 1:
            await never.wait()

    workflow = GatedWorkflow()
    scheduler = Scheduler(workflow, _jobs(), sleep=fake_sleep)

    started = await scheduler.start_all()
    assert started == ["every_2h"]
    assert await scheduler.start_all() == []

    await asyncio.wait_for(workflow.started.wait(), timeout=1)
    assert sleeps[0] == 120 * 60
    assert scheduler.running_timers == ["every_2h"]

    await scheduler.shutdown(wait=True)

    assert scheduler.running_timers == []
    status = await scheduler.get_status()
    assert status["every_2h"].next_run_at is None
    assert status["every_2h"].last_results
    assert status["backup"].last_run_at is None


@pytest.mark.asyncio
async def test_manual_trigger_works_after_stop():
    workflow = GatedWorkflow()
    scheduler = Scheduler(workflow, _jobs())
    await scheduler.start_all()
    await scheduler.stop_all()

    results = await scheduler.trigger_job("backup")

    assert workflow.calls == [("Science", 5)]
    assert results[0].imported == 1


@pytest.mark.asyncio
async def test_stop_leaves_in_flight_run_to_finish():
    workflow = GatedWorkflow()
    workflow.gate.clear()
    scheduler = Scheduler(workflow, _jobs())

    task = scheduler.spawn_tick("every_2h")
    await asyncio.wait_for(workflow.started.wait(), timeout=1)
    await scheduler.stop_all()

    assert not task.done()
    workflow.gate.set()
    results = await task
    assert len(results) == 2


class BlockingSleep:
    """Records requested intervals and never wakes up."""

    def __init__(self):
        self.calls: List[float] = []
        self._never = asyncio.Event()

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await self._never.wait()


@pytest.mark.asyncio
async def test_last_status_follows_runs():
    workflow = GatedWorkflow()
    workflow.gate.clear()
    scheduler = Scheduler(workflow, _jobs())
    assert (await scheduler.get_status())["every_2h"].last_status is None

    task = asyncio.create_task(scheduler.trigger_job("every_2h"))
    await asyncio.wait_for(workflow.started.wait(), timeout=1)
    assert (await scheduler.get_status())["every_2h"].last_status == JobStatus.RUNNING

    workflow.gate.set()
    await task
    assert (await scheduler.get_status())["every_2h"].last_status == JobStatus.COMPLETED

    workflow.fail_on.add("World")
    await scheduler.trigger_job("every_2h")
    status = await scheduler.get_status()
    assert status["every_2h"].last_status == JobStatus.FAILED
    assert status["every_2h"].is_running is False


@pytest.mark.asyncio
async def test_start_and_stop_single_job():
    sleep = BlockingSleep()
    scheduler = Scheduler(GatedWorkflow(), _jobs(), sleep=sleep)

    assert await scheduler.start_job("every_2h") is True
    assert await scheduler.start_job("every_2h") is False
    assert await scheduler.start_job("backup") is False
    await asyncio.sleep(0)

    assert scheduler.running_timers == ["every_2h"]
    assert sleep.calls == [120 * 60]
    assert (await scheduler.get_status())["every_2h"].next_run_at is not None

    assert await scheduler.stop_job("every_2h") is True
    assert await scheduler.stop_job("every_2h") is False
    assert scheduler.running_timers == []
    assert (await scheduler.get_status())["every_2h"].next_run_at is None

    with pytest.raises(UnknownJob):
        await scheduler.stop_job("nightly")
    with pytest.raises(UnknownJob):
        await scheduler.start_job("nightly")


@pytest.mark.asyncio
async def test_update_job_restarts_under_new_interval():
    sleep = BlockingSleep()
    scheduler = Scheduler(GatedWorkflow(), _jobs(), sleep=sleep)
    await scheduler.start_job("every_2h")
    await asyncio.sleep(0)

    updated = await scheduler.update_job("every_2h", interval_minutes=30, categories=["World"])
    await asyncio.sleep(0)

    assert updated.interval_minutes == 30
    assert scheduler.jobs["every_2h"].categories == ["World"]
    assert scheduler.running_timers == ["every_2h"]
    assert sleep.calls == [120 * 60, 30 * 60]

    await scheduler.shutdown()


@pytest.mark.asyncio
async def test_update_job_enable_flag_starts_and_stops():
    scheduler = Scheduler(GatedWorkflow(), _jobs(), sleep=BlockingSleep())
    await scheduler.start_all()

    await scheduler.update_job("every_2h", enabled=False)
    assert scheduler.running_timers == []

    await scheduler.update_job("backup", enabled=True)
    assert scheduler.running_timers == ["backup"]

    await scheduler.shutdown()


@pytest.mark.asyncio
async def test_update_job_rejects_bad_settings():
    scheduler = Scheduler(GatedWorkflow(), _jobs())

    with pytest.raises(ValueError):
        await scheduler.update_job("every_2h", schedule="*/5 * * * *")
    with pytest.raises(ValueError):
        await scheduler.update_job("every_2h", interval_minutes=0)
    with pytest.raises(ValueError):
        await scheduler.update_job("every_2h", name="hourly")
    with pytest.raises(UnknownCategory):
        await scheduler.update_job("every_2h", categories=["Astrology"])
    with pytest.raises(UnknownJob):
        await scheduler.update_job("nightly", enabled=True)

    assert scheduler.jobs["every_2h"].interval_minutes == 120
    assert scheduler.jobs["every_2h"].categories == ["Science", "World"]


@pytest.mark.asyncio
async def test_update_leaves_in_flight_run_on_old_settings():
    workflow = GatedWorkflow()
    workflow.gate.clear()
    scheduler = Scheduler(workflow, _jobs())

    task = scheduler.spawn_tick("every_2h")
    await asyncio.wait_for(workflow.started.wait(), timeout=1)
    await scheduler.update_job("every_2h", max_articles_per_category=2, enabled=False)

    workflow.gate.set()
    await task
    await scheduler.trigger_job("every_2h")

    assert workflow.calls == [("Science", 8), ("World", 8), ("Science", 2), ("World", 2)]


@pytest.mark.asyncio
async def test_manual_import_refused_while_scheduled_job_holds_category():
    workflow = GatedWorkflow()
    workflow.gate.clear()
    scheduler = Scheduler(workflow, _jobs())

    task = scheduler.spawn_tick("every_2h")
    await asyncio.wait_for(workflow.started.wait(), timeout=1)

    with pytest.raises(JobAlreadyRunning) as excinfo:
        await scheduler.trigger_import(["Science"], 3)
    assert excinfo.value.job_name == "every_2h"
    with pytest.raises(JobAlreadyRunning):
        await scheduler.trigger_job("backup")

    workflow.gate.set()
    await task
    results = await scheduler.trigger_import(["Science"], 3)

    assert [r.category for r in results] == ["Science"]
    assert MANUAL_JOB in await scheduler.get_status()


@pytest.mark.asyncio
async def test_scheduled_tick_skipped_while_manual_import_holds_category():
    workflow = GatedWorkflow()
    workflow.gate.clear()
    scheduler = Scheduler(workflow, _jobs())

    manual = asyncio.create_task(scheduler.trigger_import(["World"], 3))
    await asyncio.wait_for(workflow.started.wait(), timeout=1)

    assert await scheduler.tick("every_2h") is None
    backup = asyncio.create_task(scheduler.trigger_job("backup"))
    await asyncio.sleep(0)
    status = await scheduler.get_status()
    assert status["backup"].is_running is True

    workflow.gate.set()
    await asyncio.gather(manual, backup)
    assert sorted(workflow.calls) == [("Science", 5), ("World", 3)]
