# src/jobs_queue/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the scheduler.

The scheduler depends on Protocols instead of concrete implementations.
This keeps the deferral host (asyncio loop, test doubles) swappable and makes testing easier.
"""

from typing import Any, Callable, Protocol

DeferredJob = Callable[[], Any]
# Zero-argument callable; its return value may be awaitable (coroutine, Future, ...).


class DeferredExecutor(Protocol):
    """
    Host-side port: how the scheduler defers asynchronous dispatch.

    The executor decides how to interpret:
    - "soon" (call_soon): after the current turn, no explicit delay
    - "later" (call_later): after `delay` seconds
    and what to do with an exception raised by a job (the scheduler never sees it).
    """

    def call_soon(self, job: DeferredJob) -> None: ...

    def call_later(self, delay: float, job: DeferredJob) -> None: ...
