# src/jobs_queue/tasks/task_events.py

from __future__ import annotations

"""
Task lifecycle events.

Every channel has its own frozen payload type, so a listener for TaskEvent.TASK_FAILED
always receives a TaskFailed. Metadata is a snapshot of the queue taken by the scheduler
after the mutation that produced the event.

The emitter knows nothing about the queue: it only fans payloads out to listeners.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, ClassVar, TypeAlias

from .task_models import TaskConfig

logger = logging.getLogger(__name__)


class TaskEvent(StrEnum):
    TASK_ADDED = "taskAdded"
    TASK_STARTED = "taskStarted"
    TASK_COMPLETED = "taskCompleted"
    TASK_FAILED = "taskFailed"
    TASK_RETRYING = "taskRetrying"
    TASK_REMOVED = "taskRemoved"
    QUEUE_EMPTY = "queueEmpty"
    QUEUE_FULL = "queueFull"


@dataclass(slots=True, frozen=True)
class EventMetadata:
    queue_length: int
    active_tasks: int


@dataclass(slots=True, frozen=True)
class TaskAdded:
    event: ClassVar[TaskEvent] = TaskEvent.TASK_ADDED

    id: str
    config: TaskConfig
    priority: bool


@dataclass(slots=True, frozen=True)
class TaskStarted:
    event: ClassVar[TaskEvent] = TaskEvent.TASK_STARTED

    id: str
    config: TaskConfig


@dataclass(slots=True, frozen=True)
class TaskCompleted:
    event: ClassVar[TaskEvent] = TaskEvent.TASK_COMPLETED

    id: str
    config: TaskConfig


@dataclass(slots=True, frozen=True)
class TaskFailed:
    event: ClassVar[TaskEvent] = TaskEvent.TASK_FAILED

    id: str
    config: TaskConfig
    error: BaseException


@dataclass(slots=True, frozen=True)
class TaskRetrying:
    event: ClassVar[TaskEvent] = TaskEvent.TASK_RETRYING

    id: str
    config: TaskConfig
    count: int
    error: BaseException


@dataclass(slots=True, frozen=True)
class TaskRemoved:
    event: ClassVar[TaskEvent] = TaskEvent.TASK_REMOVED


@dataclass(slots=True, frozen=True)
class QueueEmpty:
    event: ClassVar[TaskEvent] = TaskEvent.QUEUE_EMPTY


@dataclass(slots=True, frozen=True)
class QueueFull:
    event: ClassVar[TaskEvent] = TaskEvent.QUEUE_FULL


TaskEventPayload: TypeAlias = (
    TaskAdded
    | TaskStarted
    | TaskCompleted
    | TaskFailed
    | TaskRetrying
    | TaskRemoved
    | QueueEmpty
    | QueueFull
)

TaskEventListener = Callable[[Any, EventMetadata | None], Any]


def as_task_event(event: TaskEvent | str) -> TaskEvent:
    try:
        return TaskEvent(event)
    except ValueError:
        raise ValueError(f"Unknown task event: {event!r}") from None


class TaskEventEmitter:
    """
    Synchronous publish/subscribe channel for task events.

    - listeners run in subscription order, on the emitting call stack
    - an event without listeners is dropped
    - a failing listener is logged and does not block the rest
    """

    def __init__(self) -> None:
        self._listeners: dict[TaskEvent, list[TaskEventListener]] = {e: [] for e in TaskEvent}

    def on(self, event: TaskEvent | str, listener: TaskEventListener) -> TaskEventEmitter:
        self._listeners[as_task_event(event)].append(listener)
        return self

    def once(self, event: TaskEvent | str, listener: TaskEventListener) -> TaskEventEmitter:
        """Subscribe for a single delivery; the listener is dropped before it is called."""
        key = as_task_event(event)

        def _wrapper(payload: Any, metadata: EventMetadata | None = None) -> Any:
            self.off(key, _wrapper)
            return listener(payload, metadata)

        _wrapper.listener = listener  # type: ignore[attr-defined]
        return self.on(key, _wrapper)

    def off(self, event: TaskEvent | str, listener: TaskEventListener) -> TaskEventEmitter:
        """Remove the most recent registration of `listener` (plain or once-wrapped)."""
        bucket = self._listeners[as_task_event(event)]
        for i in range(len(bucket) - 1, -1, -1):
            cur = bucket[i]
            if cur is listener or getattr(cur, "listener", None) is listener:
                del bucket[i]
                break
        return self

    def remove_all_listeners(self, event: TaskEvent | str | None = None) -> TaskEventEmitter:
        if event is None:
            for bucket in self._listeners.values():
                bucket.clear()
        else:
            self._listeners[as_task_event(event)].clear()
        return self

    def listener_count(self, event: TaskEvent | str) -> int:
        return len(self._listeners[as_task_event(event)])

    def emit(self, payload: TaskEventPayload, metadata: EventMetadata | None = None) -> bool:
        """
        Deliver `payload` to the listeners of its channel.

        Returns True if at least one listener was registered.
        """
        # Snapshot: listeners may subscribe/unsubscribe while we iterate.
        listeners = list(self._listeners[payload.event])
        for listener in listeners:
            try:
                listener(payload, metadata)
            except Exception:
                logger.exception("Listener failed event=%s listener=%r", payload.event.value, listener)
        return bool(listeners)
