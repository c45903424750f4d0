# tests/conftest.py

from __future__ import annotations

import pytest

from jobs_queue.tasks.task_scheduler import TaskScheduler

from .fakes import EventRecorder, ManualExecutor


@pytest.fixture()
def executor() -> ManualExecutor:
    return ManualExecutor()


@pytest.fixture()
def scheduler(executor: ManualExecutor) -> TaskScheduler:
    """
    Single-slot scheduler wired to a ManualExecutor.

    Async tasks only run when the test drives the executor, which keeps
    ordering assertions deterministic.
    """
    return TaskScheduler(1, executor=executor)


@pytest.fixture()
def recorder(scheduler: TaskScheduler) -> EventRecorder:
    return EventRecorder().attach(scheduler)
