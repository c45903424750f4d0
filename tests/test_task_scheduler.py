# tests/test_task_scheduler.py

from __future__ import annotations

import asyncio
import logging

import pytest

from jobs_queue.tasks.task_events import EventMetadata, TaskEvent
from jobs_queue.tasks.task_models import TaskConfig, TaskConfigError
from jobs_queue.tasks.task_scheduler import TaskScheduler

from .fakes import EventRecorder, ManualExecutor


def test_run_on_empty_queue_emits_only_queue_empty(scheduler, recorder) -> None:
    scheduler.run()

    assert recorder.names() == ["queueEmpty"]
    assert recorder.events[0].metadata is None
    assert scheduler.active_tasks == 0


def test_sync_task_runs_once_and_pipeline_rechains(scheduler, recorder) -> None:
    calls: list[str] = []
    scheduler.add_task(lambda: calls.append("t1"), "t1", {"sync": True})
    scheduler.run()

    assert calls == ["t1"]
    assert recorder.names() == ["taskAdded", "taskStarted", "taskCompleted", "queueEmpty"]

    added, started, completed, _ = recorder.events
    assert added.metadata == EventMetadata(queue_length=1, active_tasks=0)
    assert started.metadata == EventMetadata(queue_length=0, active_tasks=1)
    # Captured before the slot is released.
    assert completed.metadata == EventMetadata(queue_length=0, active_tasks=1)
    assert scheduler.active_tasks == 0


def test_add_task_does_not_start_anything(scheduler, recorder) -> None:
    calls: list[int] = []
    scheduler.add_task(lambda: calls.append(1), "t1")

    assert calls == []
    assert scheduler.queue_length == 1
    assert recorder.names() == ["taskAdded"]
    assert recorder.events[0].payload.priority is False


def test_fifo_order_with_single_slot(scheduler) -> None:
    order: list[str] = []
    for name in ("a", "b", "c"):
        scheduler.add_task(order.append, name, {"args": (name,)})

    scheduler.run()

    assert order == ["a", "b", "c"]
    assert scheduler.queue_length == 0


def test_priority_task_jumps_the_queue(scheduler, recorder) -> None:
    order: list[str] = []
    scheduler.add_task(order.append, "a", {"args": ("a",)})
    scheduler.add_task(order.append, "b", {"args": ("b",)})
    scheduler.add_task(order.append, "urgent", {"args": ("urgent",)}, priority=True)

    assert recorder.of(TaskEvent.TASK_ADDED)[-1].payload.priority is True

    scheduler.run()
    assert order == ["urgent", "a", "b"]


def test_retry_decrement_law(scheduler, recorder) -> None:
    calls: list[int] = []
    errors: list[BaseException] = []
    retries: list[int] = []
    finals: list[int] = []

    def always_fails() -> None:
        calls.append(1)
        raise ValueError("boom")

    scheduler.add_task(
        always_fails,
        "flaky",
        {
            "retry_on_fail": True,
            "retry_count": 3,
            "on_error": errors.append,
            "on_retry": lambda err, count: retries.append(count),
            "on_finally": lambda: finals.append(1),
        },
    )
    scheduler.run()

    assert len(calls) == 4
    assert len(errors) == 4
    assert all(isinstance(e, ValueError) for e in errors)
    assert retries == [3, 2, 1]
    assert [e.payload.count for e in recorder.of(TaskEvent.TASK_RETRYING)] == [3, 2, 1]
    assert len(recorder.of(TaskEvent.TASK_FAILED)) == 4
    assert len(finals) == 4

    # 1 initial add + 3 priority re-adds with a decremented budget.
    added = recorder.of(TaskEvent.TASK_ADDED)
    assert [a.payload.config.retry_count for a in added] == [3, 2, 1, 0]
    assert [a.payload.priority for a in added] == [False, True, True, True]

    assert recorder.names()[-1] == "queueEmpty"
    assert scheduler.active_tasks == 0
    assert scheduler.queue_length == 0


def test_failure_sequence_per_attempt(scheduler, recorder) -> None:
    def fails() -> None:
        raise RuntimeError("nope")

    scheduler.add_task(fails, "t", {"retry_on_fail": True, "retry_count": 1})
    scheduler.run()

    assert recorder.names() == [
        "taskAdded",
        "taskStarted",
        "taskFailed",
        "taskRetrying",
        "taskAdded",
        "taskStarted",
        "taskFailed",
        "queueEmpty",
    ]
    failed = recorder.of(TaskEvent.TASK_FAILED)[0]
    assert isinstance(failed.payload.error, RuntimeError)
    assert failed.metadata == EventMetadata(queue_length=0, active_tasks=1)


def test_failure_without_retry_drops_task_and_keeps_draining(scheduler, recorder) -> None:
    ran: list[str] = []

    def fails() -> None:
        raise RuntimeError("nope")

    scheduler.add_task(fails, "bad")
    scheduler.add_task(ran.append, "good", {"args": ("good",)})
    scheduler.run()

    assert ran == ["good"]
    assert recorder.of(TaskEvent.TASK_RETRYING) == []
    assert [e.payload.id for e in recorder.of(TaskEvent.TASK_COMPLETED)] == ["good"]
    assert scheduler.active_tasks == 0


def test_sync_failure_is_logged(scheduler, caplog) -> None:
    def fails() -> None:
        raise RuntimeError("nope")

    scheduler.add_task(fails, "bad")
    with caplog.at_level(logging.ERROR, logger="jobs_queue"):
        scheduler.run()

    assert any("Task bad failed" in r.getMessage() for r in caplog.records)


def test_metadata_matches_live_state_and_ceiling_holds() -> None:
    executor = ManualExecutor()
    scheduler = TaskScheduler(2, executor=executor)
    seen: list[tuple[str, EventMetadata | None, EventMetadata]] = []

    def check(payload, metadata=None) -> None:
        live = EventMetadata(queue_length=scheduler.queue_length, active_tasks=scheduler.active_tasks)
        seen.append((payload.event.value, metadata, live))
        assert 0 <= scheduler.active_tasks <= scheduler.concurrency_limit

    for event in TaskEvent:
        scheduler.on(event, check)

    def fails() -> None:
        raise ValueError("x")

    scheduler.add_task(lambda: None, "a")
    scheduler.add_task(fails, "b", {"retry_on_fail": True, "retry_count": 2})
    scheduler.add_task(lambda: None, "c")
    scheduler.remove_task()
    scheduler.add_task(lambda: None, "d", priority=True)
    scheduler.run()
    scheduler.run()

    with_meta = [(name, meta, live) for name, meta, live in seen if meta is not None]
    assert with_meta
    for name, meta, live in with_meta:
        assert meta == live, name


def test_remove_task_drops_head_without_callbacks(scheduler, recorder) -> None:
    touched: list[str] = []
    scheduler.add_task(
        lambda: touched.append("run-a"),
        "a",
        {"on_finally": lambda: touched.append("finally-a"), "on_error": lambda e: touched.append("error-a")},
    )
    scheduler.add_task(lambda: touched.append("run-b"), "b")

    scheduler.remove_task()
    assert recorder.events[-1].event == TaskEvent.TASK_REMOVED
    assert recorder.events[-1].metadata == EventMetadata(queue_length=1, active_tasks=0)

    scheduler.run()
    assert touched == ["run-b"]


def test_remove_task_on_empty_queue_is_silent(scheduler, recorder) -> None:
    scheduler.remove_task()

    assert recorder.names() == ["taskRemoved"]
    assert recorder.events[0].metadata == EventMetadata(queue_length=0, active_tasks=0)


def test_sync_path_discards_return_value(scheduler) -> None:
    results: list[object] = []
    scheduler.add_task(lambda: 42, "t", {"on_success": results.append})
    scheduler.run()

    assert results == []


def test_finally_runs_once_after_completion(scheduler, recorder) -> None:
    marks: list[str] = []
    recorder_len_at_finally: list[int] = []

    def on_finally() -> None:
        marks.append("finally")
        recorder_len_at_finally.append(len(recorder.of(TaskEvent.TASK_COMPLETED)))

    scheduler.add_task(lambda: marks.append("run"), "t", {"on_finally": on_finally})
    scheduler.run()

    assert marks == ["run", "finally"]
    assert recorder_len_at_finally == [1]


def test_context_is_passed_first(scheduler) -> None:
    class Counter:
        def __init__(self) -> None:
            self.total = 0

        def add(self, n: int) -> None:
            self.total += n

    counter = Counter()
    scheduler.add_task(Counter.add, "t", {"context": counter, "args": [5]})
    scheduler.run()

    assert counter.total == 5


def test_failing_callbacks_and_listeners_do_not_break_the_loop(scheduler, caplog) -> None:
    def bad_listener(payload, metadata=None) -> None:
        raise RuntimeError("listener")

    def bad_hook(*_args) -> None:
        raise RuntimeError("hook")

    def fails() -> None:
        raise ValueError("task")

    scheduler.on(TaskEvent.TASK_STARTED, bad_listener)
    scheduler.add_task(fails, "a", {"on_error": bad_hook, "on_finally": bad_hook})
    scheduler.add_task(lambda: None, "b", {"on_finally": bad_hook})

    with caplog.at_level(logging.ERROR, logger="jobs_queue"):
        scheduler.run()

    assert scheduler.active_tasks == 0
    assert scheduler.queue_length == 0
    messages = [r.getMessage() for r in caplog.records]
    assert any("on_error callback failed task_id=a" in m for m in messages)
    assert any("on_finally callback failed task_id=b" in m for m in messages)
    assert any("Listener failed event=taskStarted" in m for m in messages)


def test_invalid_config_is_rejected_before_queueing(scheduler, recorder) -> None:
    with pytest.raises(TaskConfigError):
        scheduler.add_task(lambda: None, "t", {"sync": False})
    with pytest.raises(TaskConfigError):
        scheduler.add_task(lambda: None, "t", {"retry_on_fail": True})
    with pytest.raises(TypeError):
        scheduler.add_task("not callable", "t")  # type: ignore[arg-type]

    assert scheduler.queue_length == 0
    assert recorder.events == []


def test_add_task_accepts_prebuilt_config(scheduler, recorder) -> None:
    cfg = TaskConfig(args=(1, 2))
    got: list[tuple[int, int]] = []
    scheduler.add_task(lambda a, b: got.append((a, b)), "t", cfg)
    scheduler.run()

    assert got == [(1, 2)]
    assert recorder.of(TaskEvent.TASK_ADDED)[0].payload.config is cfg


@pytest.mark.parametrize("limit", [0, -1, True, 1.5])
def test_concurrency_limit_must_be_positive_int(limit) -> None:
    with pytest.raises(ValueError):
        TaskScheduler(limit)


def test_duplicate_ids_are_allowed(scheduler) -> None:
    ran: list[int] = []
    scheduler.add_task(lambda: ran.append(1), "same")
    scheduler.add_task(lambda: ran.append(2), "same")
    scheduler.run()

    assert ran == [1, 2]


def test_long_sync_chain_does_not_recurse() -> None:
    scheduler = TaskScheduler(1, executor=ManualExecutor())
    count = 0

    def bump() -> None:
        nonlocal count
        count += 1

    for i in range(5000):
        scheduler.add_task(bump, f"t{i}")
    scheduler.run()

    assert count == 5000


def test_run_from_listener_is_served_after_current_attempt(scheduler) -> None:
    recorder = EventRecorder()
    order: list[str] = []

    def on_started(payload, metadata=None) -> None:
        # Re-entrant run(): must not dispatch while this attempt is still in progress.
        scheduler.run()
        order.append(f"started:{payload.id}")

    scheduler.on(TaskEvent.TASK_STARTED, on_started)
    scheduler.on(TaskEvent.QUEUE_EMPTY, recorder)
    scheduler.add_task(lambda: order.append("run:a"), "a")
    scheduler.run()

    assert order == ["started:a", "run:a"]
    # completion request + listener request -> two attempts on an empty queue
    assert len(recorder.events) == 2


def test_off_and_once_through_scheduler(scheduler) -> None:
    hits: list[str] = []

    def listener(payload, metadata=None) -> None:
        hits.append("on")

    scheduler.on("queueEmpty", listener)
    scheduler.once("queueEmpty", lambda p, m=None: hits.append("once"))
    scheduler.run()
    scheduler.off("queueEmpty", listener)
    scheduler.run()

    assert hits == ["on", "once"]


def test_base_exception_frees_slot_and_propagates(scheduler, recorder) -> None:
    finals: list[int] = []

    def cancelled() -> None:
        raise asyncio.CancelledError()

    scheduler.add_task(cancelled, "c", {"on_finally": lambda: finals.append(1)})
    scheduler.add_task(lambda: None, "next")

    with pytest.raises(asyncio.CancelledError):
        scheduler.run()

    assert scheduler.active_tasks == 0
    assert finals == [1]
    assert recorder.of(TaskEvent.TASK_FAILED) == []

    # The loop is usable again and picks up where it stopped.
    scheduler.run()
    assert [e.payload.id for e in recorder.of(TaskEvent.TASK_COMPLETED)] == ["next"]
    assert scheduler.queue_length == 0
