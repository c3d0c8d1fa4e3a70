import asyncio

import pytest

from application.dtos.reports import ProcessingReport
from infrastructure.scheduler import PeriodicJob, TickScheduler


class RecordingTick:
    def __init__(self, block: asyncio.Event = None):
        self.block = block
        self.calls = []
        self.stop_events = []

    async def __call__(self, now, *, stop_event=None):
        self.calls.append(now)
        self.stop_events.append(stop_event)
        if self.block is not None:
            await self.block.wait()
        return ProcessingReport(job="recording", now=now, selected=1, succeeded=1)


@pytest.mark.asyncio
async def test_run_once_uses_clock_and_records_report(now):
    tick = RecordingTick()
    job = PeriodicJob("refunds", 30, tick, clock=lambda: now)

    report = await job.run_once()

    assert report.succeeded == 1
    assert tick.calls == [now]
    assert job.runs == 1
    assert job.last_report is report


@pytest.mark.asyncio
async def test_overlapping_tick_is_skipped(now):
    release = asyncio.Event()
    tick = RecordingTick(block=release)
    job = PeriodicJob("webhooks", 60, tick, clock=lambda: now)

    first = asyncio.create_task(job.run_once())
    await asyncio.sleep(0)
    assert job.is_busy

    assert await job.run_once() is None
    assert job.skipped == 1

    release.set()
    assert (await first) is not None
    assert len(tick.calls) == 1
    assert job.status()["skipped"] == 1


@pytest.mark.asyncio
async def test_crashing_tick_does_not_raise(now):
    async def broken(now, *, stop_event=None):
        raise RuntimeError("unexpected")

    job = PeriodicJob("broken", 1, broken, clock=lambda: now)

    assert await job.run_once() is None
    assert job.last_error == "unexpected"
    assert not job.is_busy


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        PeriodicJob("bad", 0, RecordingTick())


@pytest.mark.asyncio
async def test_scheduler_runs_jobs_and_stops(now):
    refunds, webhooks = RecordingTick(), RecordingTick()
    scheduler = TickScheduler()
    scheduler.add_job(PeriodicJob("refunds", 0.01, refunds, clock=lambda: now))
    scheduler.add_job(PeriodicJob("webhooks", 0.01, webhooks, clock=lambda: now))

    await scheduler.start()
    assert scheduler.is_running
    await asyncio.sleep(0.05)
    await scheduler.stop(timeout=1)

    assert not scheduler.is_running
    assert refunds.calls and webhooks.calls
    # ticks receive the scheduler's shared stop event
    assert refunds.stop_events[0] is scheduler.stop_event
    assert scheduler.stop_event.is_set()
    status = scheduler.status()
    assert status["jobs"]["refunds"]["runs"] == len(refunds.calls)


@pytest.mark.asyncio
async def test_stop_waits_for_in_flight_tick(now):
    release = asyncio.Event()
    tick = RecordingTick(block=release)
    scheduler = TickScheduler()
    job = scheduler.add_job(PeriodicJob("slow", 60, tick, clock=lambda: now))

    await scheduler.start()
    await asyncio.sleep(0.01)
    stopping = asyncio.create_task(scheduler.stop(timeout=1))
    await asyncio.sleep(0.01)
    assert not stopping.done()

    release.set()
    await stopping
    assert job.runs == 1


def test_duplicate_job_names_rejected():
    scheduler = TickScheduler()
    scheduler.add_job(PeriodicJob("refunds", 1, RecordingTick()))
    with pytest.raises(ValueError):
        scheduler.add_job(PeriodicJob("refunds", 1, RecordingTick()))
