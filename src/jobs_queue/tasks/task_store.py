# src/jobs_queue/tasks/task_store.py

from __future__ import annotations

from collections import deque
from collections.abc import Iterator

from .task_models import Task


class QueueStore:
    """
    In-memory ordered store of pending tasks.

    FIFO by default; push_front is the priority fast path.
    Tasks are never mutated here and ids are not checked for uniqueness.

    Thread-safety:
    - none; the scheduler owns the store and mutates it from one execution context
    """

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: deque[Task] = deque()

    def push_back(self, task: Task) -> None:
        self._items.append(task)

    def push_front(self, task: Task) -> None:
        self._items.appendleft(task)

    def pop_front(self) -> Task | None:
        if not self._items:
            return None
        return self._items.popleft()

    def peek(self) -> Task | None:
        return self._items[0] if self._items else None

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __iter__(self) -> Iterator[Task]:
        # Iterate a copy so callers cannot trip over concurrent pushes/pops.
        return iter(tuple(self._items))
