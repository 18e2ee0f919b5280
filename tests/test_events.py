"""Tests for EventBus and job event types."""

from __future__ import annotations

import logging

import pytest

from skusync.events import EventBus, JobEvent, JobEventType

# =========================================================================
# Helpers
# =========================================================================


async def _collecting_handler(events: list[JobEvent], event: JobEvent) -> None:
    """Append event to a list for assertion."""
    events.append(event)


async def _failing_handler(event: JobEvent) -> None:
    """Handler that always raises."""
    raise RuntimeError(f"boom on job {event.job_id}")


# =========================================================================
# JobEventType / JobEvent
# =========================================================================


class TestJobEventType:
    def test_values(self) -> None:
        assert JobEventType.JOB_STARTED.value == "job_started"
        assert JobEventType.JOB_SUCCEEDED.value == "job_succeeded"
        assert JobEventType.JOB_FAILED.value == "job_failed"
        assert JobEventType.JOB_CANCELED.value == "job_canceled"

    def test_unique_values(self) -> None:
        values = [et.value for et in JobEventType]
        assert len(values) == len(set(values))


class TestJobEvent:
    def test_defaults(self) -> None:
        ev = JobEvent(event_type=JobEventType.JOB_STARTED, job_id=1)
        assert ev.mode == ""
        assert ev.counts == {}
        assert ev.error_summary is None

    def test_immutable(self) -> None:
        ev = JobEvent(event_type=JobEventType.JOB_STARTED, job_id=1)
        with pytest.raises(AttributeError):
            ev.job_id = 2  # type: ignore[misc]


# =========================================================================
# EventBus Registration
# =========================================================================


class TestEventBusRegistration:
    async def test_no_handlers_is_noop(self) -> None:
        await EventBus().emit(JobEvent(event_type=JobEventType.JOB_STARTED, job_id=1))

    async def test_register_multiple_types(self) -> None:
        events: list[JobEvent] = []
        bus = EventBus()
        bus.register(JobEventType.JOB_STARTED, events.append)
        bus.register(JobEventType.JOB_FAILED, events.append)

        await bus.emit(JobEvent(event_type=JobEventType.JOB_STARTED, job_id=1))
        await bus.emit(JobEvent(event_type=JobEventType.JOB_FAILED, job_id=1))
        await bus.emit(JobEvent(event_type=JobEventType.JOB_SUCCEEDED, job_id=1))

        assert [e.event_type for e in events] == [
            JobEventType.JOB_STARTED,
            JobEventType.JOB_FAILED,
        ]


# =========================================================================
# EventBus Emit
# =========================================================================


class TestEventBusEmit:
    async def test_async_handler_called(self) -> None:
        bus = EventBus()
        collected: list[JobEvent] = []

        async def handler(event: JobEvent) -> None:
            await _collecting_handler(collected, event)

        bus.register(JobEventType.JOB_SUCCEEDED, handler)
        ev = JobEvent(event_type=JobEventType.JOB_SUCCEEDED, job_id=7, mode="execute")
        await bus.emit(ev)
        assert collected == [ev]

    async def test_sync_handler_called(self) -> None:
        bus = EventBus()
        collected: list[JobEvent] = []
        bus.register(JobEventType.JOB_STARTED, collected.append)
        await bus.emit(JobEvent(event_type=JobEventType.JOB_STARTED, job_id=1))
        assert len(collected) == 1

    async def test_only_matching_type(self) -> None:
        bus = EventBus()
        collected: list[JobEvent] = []
        bus.register(JobEventType.JOB_FAILED, collected.append)
        await bus.emit(JobEvent(event_type=JobEventType.JOB_SUCCEEDED, job_id=1))
        assert collected == []

    async def test_registration_order(self) -> None:
        bus = EventBus()
        order: list[str] = []
        bus.register(JobEventType.JOB_STARTED, lambda e: order.append("a"))
        bus.register(JobEventType.JOB_STARTED, lambda e: order.append("b"))
        await bus.emit(JobEvent(event_type=JobEventType.JOB_STARTED, job_id=1))
        assert order == ["a", "b"]

    async def test_failing_handler_isolated(self, caplog: pytest.LogCaptureFixture) -> None:
        bus = EventBus()
        collected: list[JobEvent] = []
        bus.register(JobEventType.JOB_FAILED, _failing_handler)
        bus.register(JobEventType.JOB_FAILED, collected.append)

        with caplog.at_level(logging.WARNING, logger="skusync.events"):
            await bus.emit(JobEvent(event_type=JobEventType.JOB_FAILED, job_id=3))

        assert len(collected) == 1
        assert "failed for job_failed on job 3" in caplog.text
