# src/jobs_queue/tasks/deferred.py

from __future__ import annotations

"""
asyncio-backed deferred execution.

- call_soon  -> loop.call_soon   (next loop iteration)
- call_later -> loop.call_later  (timer, delay in seconds)

If a job returns an awaitable, it is driven as an asyncio.Task. A job that fails is reported
to the loop exception handler, exactly as asyncio reports failing callbacks.
"""

import asyncio
import inspect
import logging

from ..core.ports import DeferredJob

logger = logging.getLogger(__name__)


class AsyncioDeferredExecutor:
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._pending = 0
        self._tasks: set[asyncio.Task] = set()
        self._idle: asyncio.Event | None = None

    @property
    def pending(self) -> int:
        """Jobs scheduled and not finished yet (timers, queued callbacks, running coroutines)."""
        return self._pending

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        # Raises RuntimeError outside a running loop; the scheduler treats that as a dispatch failure.
        return asyncio.get_running_loop()

    def call_soon(self, job: DeferredJob) -> None:
        loop = self._get_loop()
        loop.call_soon(self._start, loop, job)
        self._pending += 1

    def call_later(self, delay: float, job: DeferredJob) -> None:
        loop = self._get_loop()
        loop.call_later(max(0.0, float(delay)), self._start, loop, job)
        self._pending += 1

    def _start(self, loop: asyncio.AbstractEventLoop, job: DeferredJob) -> None:
        try:
            outcome = job()
        except BaseException:
            self._finish()
            # Let asyncio's Handle machinery hand it to the loop exception handler.
            raise

        if not inspect.isawaitable(outcome):
            self._finish()
            return

        task = asyncio.ensure_future(outcome, loop=loop)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        try:
            if task.cancelled():
                logger.debug("Deferred job cancelled: %r", task)
                return
            exc = task.exception()
            if exc is not None:
                task.get_loop().call_exception_handler(
                    {
                        "message": "Deferred job failed",
                        "exception": exc,
                        "future": task,
                    }
                )
        finally:
            self._finish()

    def _finish(self) -> None:
        self._pending -= 1
        if self._pending <= 0 and self._idle is not None:
            self._idle.set()

    async def join(self) -> None:
        """Wait until every scheduled job (including ones scheduled meanwhile) has finished."""
        while self._pending > 0:
            # One Event per idle period, shared by every concurrent join().
            if self._idle is None or self._idle.is_set():
                self._idle = asyncio.Event()
            await self._idle.wait()
