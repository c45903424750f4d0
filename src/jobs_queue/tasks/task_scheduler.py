# src/jobs_queue/tasks/task_scheduler.py

from __future__ import annotations

"""
Task scheduler.

A small run loop that:
- keeps pending tasks in a QueueStore (FIFO, priority tasks go to the front),
- dispatches them while fewer than `concurrency_limit` tasks are in flight,
- runs sync tasks inline and defers async ones via an injected DeferredExecutor,
- re-enqueues failed sync tasks at the front while they have retries left,
- publishes every transition on a TaskEventEmitter.

Nothing runs until run() is called. Each finished task requests exactly one more run(),
which keeps the pipeline full. Event metadata is always captured after the queue/counter
mutation that produced the event.

Failure boundary:
- exceptions raised while dispatching (the sync call itself, or scheduling an async job)
  go through taskFailed / on_error / retry
- exceptions raised inside a deferred job belong to the executor host; the scheduler
  never sees them and the slot stays occupied
"""

import functools
import inspect
import logging
from collections.abc import Callable, Mapping
from typing import Any

from ..core.ports import DeferredExecutor
from .deferred import AsyncioDeferredExecutor
from .task_events import (
    EventMetadata,
    QueueEmpty,
    QueueFull,
    TaskAdded,
    TaskCompleted,
    TaskEvent,
    TaskEventEmitter,
    TaskEventListener,
    TaskFailed,
    TaskRemoved,
    TaskRetrying,
    TaskStarted,
)
from .task_models import ExecuteIn, Task, TaskCallable, TaskConfig
from .task_store import QueueStore

logger = logging.getLogger(__name__)


class TaskScheduler:
    def __init__(
            self,
            concurrency_limit: int = 1,
            *,
            executor: DeferredExecutor | None = None,
            emitter: TaskEventEmitter | None = None,
    ) -> None:
        if isinstance(concurrency_limit, bool) or not isinstance(concurrency_limit, int):
            raise ValueError("concurrency_limit must be an int")
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be >= 1")

        self._concurrency_limit = concurrency_limit
        self._active_tasks = 0
        self._queue = QueueStore()
        self._executor: DeferredExecutor = executor if executor is not None else AsyncioDeferredExecutor()
        self._events = emitter if emitter is not None else TaskEventEmitter()

        # Drain loop state: run() requests issued while a run() is on the stack are queued here.
        self._draining = False
        self._run_requests = 0

    def __repr__(self) -> str:
        return (
            f"TaskScheduler(concurrency_limit={self._concurrency_limit}, "
            f"active_tasks={self._active_tasks}, queue_length={len(self._queue)})"
        )

    # ---- observation ----

    @property
    def concurrency_limit(self) -> int:
        return self._concurrency_limit

    @property
    def active_tasks(self) -> int:
        return self._active_tasks

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def events(self) -> TaskEventEmitter:
        return self._events

    def _metadata(self) -> EventMetadata:
        return EventMetadata(queue_length=len(self._queue), active_tasks=self._active_tasks)

    # ---- subscriptions ----

    def on(self, event: TaskEvent | str, listener: TaskEventListener) -> None:
        self._events.on(event, listener)

    def off(self, event: TaskEvent | str, listener: TaskEventListener) -> None:
        self._events.off(event, listener)

    def once(self, event: TaskEvent | str, listener: TaskEventListener) -> None:
        self._events.once(event, listener)

    # ---- queue API ----

    def add_task(
            self,
            fn: TaskCallable,
            task_id: str,
            config: TaskConfig | Mapping[str, Any] | None = None,
            priority: bool = False,
    ) -> None:
        """
        Queue `fn` under `task_id` (back of the queue, or front if priority=True).

        Raises TaskConfigError for an invalid config, before the queue is touched.
        Does not start anything: call run().
        """
        if not callable(fn):
            raise TypeError(f"task must be callable, got {type(fn).__name__}")

        cfg = config if isinstance(config, TaskConfig) else TaskConfig.from_mapping(config)
        task = Task(fn=fn, id=task_id, config=cfg)

        if priority:
            self._queue.push_front(task)
        else:
            self._queue.push_back(task)

        logger.debug("Task %s queued priority=%s queue_length=%d", task_id, priority, len(self._queue))
        self._events.emit(TaskAdded(id=task_id, config=cfg, priority=bool(priority)), self._metadata())

    def remove_task(self) -> None:
        """Drop the head of the queue (if any) without running it or calling its callbacks."""
        dropped = self._queue.pop_front()
        if dropped is not None:
            logger.debug("Task %s removed from queue", dropped.id)
        self._events.emit(TaskRemoved(), self._metadata())

    def run(self) -> None:
        """
        Request one run attempt.

        Called from inside a run attempt (task completion, a listener, ...), the request is
        queued and served by the outer call once the current attempt returns.
        """
        self._run_requests += 1
        if self._draining:
            return

        self._draining = True
        try:
            while self._run_requests > 0:
                self._run_requests -= 1
                self._run_once()
        finally:
            self._draining = False
            # Pending requests die with an escaping BaseException; callers re-run explicitly.
            self._run_requests = 0

    # ---- run loop ----

    def _run_once(self) -> None:
        if not self._queue:
            self._events.emit(QueueEmpty())
            return
        if self._active_tasks >= self._concurrency_limit:
            self._events.emit(QueueFull())
            return

        task = self._queue.pop_front()
        if task is None:
            return
        self._active_tasks += 1
        cfg = task.config

        logger.debug("Task %s started sync=%s active=%d", task.id, cfg.sync, self._active_tasks)
        self._events.emit(TaskStarted(id=task.id, config=cfg), self._metadata())

        try:
            self._dispatch(task)
        except Exception as exc:
            logger.exception("Task %s failed", task.id)
            self._on_failed_task(task, exc)
        except BaseException:
            # KeyboardInterrupt, SystemExit, CancelledError: free the slot and let it propagate.
            self._active_tasks -= 1
            raise
        else:
            if cfg.sync:
                self._on_completed_task(task)
        finally:
            self._call_hook(task, "on_finally", cfg.on_finally)

    def _dispatch(self, task: Task) -> None:
        cfg = task.config

        if cfg.sync:
            result = task.invoke()
            if inspect.isawaitable(result):
                # Sync tasks are done once they return; a returned awaitable is only driven, never awaited here.
                try:
                    self._executor.call_soon(lambda: result)
                except Exception:
                    # The task itself returned normally; only the background part is lost.
                    logger.warning(
                        "Task %s returned an awaitable that cannot be scheduled; dropping it",
                        task.id,
                        exc_info=True,
                    )
                    if inspect.iscoroutine(result):
                        result.close()
            return

        job = functools.partial(self._execute_async_task, task)
        if cfg.execute_in == ExecuteIn.MICRO_TASKS:
            self._executor.call_soon(job)
        else:
            self._executor.call_later(float(cfg.timeout or 0), job)

    async def _execute_async_task(self, task: Task) -> None:
        # Runs on the executor; exceptions here escape to the executor host.
        result = task.invoke()
        if inspect.isawaitable(result):
            result = await result

        self._call_hook(task, "on_success", task.config.on_success, result)
        self._on_completed_task(task)

    def _on_completed_task(self, task: Task) -> None:
        self._events.emit(TaskCompleted(id=task.id, config=task.config), self._metadata())
        self._active_tasks -= 1
        logger.debug("Task %s completed active=%d", task.id, self._active_tasks)
        self.run()

    def _on_failed_task(self, task: Task, error: BaseException) -> None:
        cfg = task.config
        self._events.emit(TaskFailed(id=task.id, config=cfg, error=error), self._metadata())
        self._call_hook(task, "on_error", cfg.on_error, error)

        if cfg.can_retry:
            count = int(cfg.retry_count or 0)
            self._call_hook(task, "on_retry", cfg.on_retry, error, count)
            self._events.emit(
                TaskRetrying(id=task.id, config=cfg, count=count, error=error),
                self._metadata(),
            )
            logger.info("Task %s retrying, %d attempt(s) left", task.id, count)
            self.add_task(task.fn, task.id, cfg.for_retry(), priority=True)
        elif cfg.retry_on_fail:
            logger.warning("Task %s dropped: retries exhausted", task.id)

        # Free the slot so the retry (or the next task) can be dispatched.
        self._active_tasks -= 1
        self.run()

    @staticmethod
    def _call_hook(task: Task, name: str, hook: Callable[..., Any] | None, *args: Any) -> None:
        if hook is None:
            return
        try:
            hook(*args)
        except Exception:
            logger.exception("%s callback failed task_id=%s", name, task.id)
