"""Tests for progress reporting."""

import asyncio

from sla_core_lib.core.forensics.progress import ProgressEvent, ProgressReporter


def test_sync_sink_receives_clamped_events():
    events = []
    reporter = ProgressReporter(events.append)

    async def scenario():
        await reporter.report("statistics", 10, detail="12 steps analyzed")
        await reporter.report("overflow", 150)
        await reporter.report("underflow", -5)

    asyncio.run(scenario())

    assert events[0] == ProgressEvent(stage="statistics", percent=10, detail="12 steps analyzed")
    assert [e.percent for e in events] == [10, 100, 0]


def test_async_sink_is_awaited():
    events = []

    async def sink(event):
        await asyncio.sleep(0)
        events.append(event.stage)

    asyncio.run(ProgressReporter(sink).report("complete", 100))
    assert events == ["complete"]


def test_failing_sink_does_not_interrupt():
    def sink(event):
        raise RuntimeError("socket closed")

    asyncio.run(ProgressReporter(sink).report("complete", 100))


def test_no_sink():
    asyncio.run(ProgressReporter().report("complete", 100))
