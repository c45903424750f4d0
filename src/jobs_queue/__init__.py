"""
In-process task scheduler with a concurrency limit, retries and lifecycle events.

    from jobs_queue import TaskScheduler

    scheduler = TaskScheduler(concurrency_limit=2)
    scheduler.on("taskCompleted", lambda payload, meta: print(payload.id, meta))
    scheduler.add_task(print, "hello", {"args": ("hello",)})
    scheduler.run()
"""

from .tasks.deferred import AsyncioDeferredExecutor
from .tasks.task_api import attach_event_logger, create_scheduler
from .tasks.task_events import (
    EventMetadata,
    QueueEmpty,
    QueueFull,
    TaskAdded,
    TaskCompleted,
    TaskEvent,
    TaskEventEmitter,
    TaskFailed,
    TaskRemoved,
    TaskRetrying,
    TaskStarted,
)
from .tasks.task_models import ExecuteIn, Task, TaskConfig, TaskConfigError
from .tasks.task_scheduler import TaskScheduler

__all__ = [
    "AsyncioDeferredExecutor",
    "EventMetadata",
    "ExecuteIn",
    "QueueEmpty",
    "QueueFull",
    "Task",
    "TaskAdded",
    "TaskCompleted",
    "TaskConfig",
    "TaskConfigError",
    "TaskEvent",
    "TaskEventEmitter",
    "TaskFailed",
    "TaskRemoved",
    "TaskRetrying",
    "TaskScheduler",
    "TaskStarted",
    "attach_event_logger",
    "create_scheduler",
]
