# src/jobs_queue/tasks/task_api.py

from __future__ import annotations

import logging
from collections.abc import Callable

from ..config import Settings, get_settings
from ..core.ports import DeferredExecutor
from .task_events import (
    EventMetadata,
    TaskAdded,
    TaskEvent,
    TaskEventPayload,
    TaskFailed,
    TaskRetrying,
)
from .task_scheduler import TaskScheduler

events_logger = logging.getLogger("jobs_queue.events")


def create_scheduler(
    settings: Settings | None = None,
    *,
    executor: DeferredExecutor | None = None,
) -> TaskScheduler:
    """
    Convenience helper: build a TaskScheduler from Settings.
    Falls back to get_settings() (environment / .env) if settings is None.
    """
    if settings is None:
        settings = get_settings()

    scheduler = TaskScheduler(settings.concurrency_limit, executor=executor)
    if settings.log_events:
        attach_event_logger(scheduler)
    return scheduler


def _describe(payload: TaskEventPayload) -> str:
    if isinstance(payload, TaskRetrying):
        return f"id={payload.id} count={payload.count} error={payload.error!r}"
    if isinstance(payload, TaskFailed):
        return f"id={payload.id} error={payload.error!r}"
    if isinstance(payload, TaskAdded):
        return f"id={payload.id} priority={payload.priority}"
    task_id = getattr(payload, "id", None)
    return "" if task_id is None else f"id={task_id}"


def attach_event_logger(
    scheduler: TaskScheduler,
    *,
    logger: logging.Logger | None = None,
    level: int = logging.DEBUG,
) -> Callable[[], None]:
    """
    Log every scheduler event (one line per event, with the metadata snapshot).

    taskFailed is always logged at WARNING or above. Returns a callable that detaches the logger.
    """
    log = logger or events_logger

    def _listener(payload: TaskEventPayload, metadata: EventMetadata | None = None) -> None:
        lvl = max(level, logging.WARNING) if payload.event == TaskEvent.TASK_FAILED else level
        if not log.isEnabledFor(lvl):
            return
        parts = [payload.event.value, _describe(payload)]
        if metadata is not None:
            parts.append(f"queue={metadata.queue_length} active={metadata.active_tasks}")
        log.log(lvl, "%s", " ".join(p for p in parts if p))

    for event in TaskEvent:
        scheduler.on(event, _listener)

    def _detach() -> None:
        for event in TaskEvent:
            scheduler.off(event, _listener)

    return _detach
