"""EventBus and job lifecycle events published by the sync runner."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class JobEventType(Enum):
    """Lifecycle transitions of a sync job."""

    JOB_STARTED = "job_started"
    JOB_SUCCEEDED = "job_succeeded"
    JOB_FAILED = "job_failed"
    JOB_CANCELED = "job_canceled"


@dataclass(frozen=True, slots=True)
class JobEvent:
    """Immutable record of a job transition.

    Attributes:
        event_type: The transition that occurred.
        job_id: The job that moved.
        mode: ``dry_run`` or ``execute``.
        counts: Job counters at the time of the transition.
        error_summary: Redacted failure message (failures only).
    """

    event_type: JobEventType
    job_id: int
    mode: str = ""
    counts: dict[str, int] = field(default_factory=dict)
    error_summary: str | None = None


class EventBus:
    """Dispatches job events to registered handlers.

    Handlers may be plain or coroutine functions and are called in
    registration order.  A failing handler is logged and skipped; it never
    affects the job.
    """

    def __init__(self) -> None:
        self._handlers: dict[JobEventType, list[Callable[..., Any]]] = {
            et: [] for et in JobEventType
        }

    def register(self, event_type: JobEventType, handler: Callable[..., Any]) -> None:
        """Append *handler* to the list for *event_type*."""
        self._handlers[event_type].append(handler)

    async def emit(self, event: JobEvent) -> None:
        """Dispatch *event* to every handler registered for its type."""
        for handler in self._handlers[event.event_type]:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.warning(
                    "Handler %r failed for %s on job %d",
                    handler,
                    event.event_type.value,
                    event.job_id,
                    exc_info=True,
                )
