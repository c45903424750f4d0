# src/jobs_queue/tasks/task_models.py

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

TaskCallable = Callable[..., Any]


class TaskConfigError(ValueError):
    """Raised when a task configuration violates its field constraints."""


class ExecuteIn(StrEnum):
    """
    Deferral mechanism for asynchronous tasks.

    - MICRO_TASKS: run on the next turn of the event loop, no delay
    - CALLBACK: run after `timeout` seconds
    """

    MICRO_TASKS = "microTasks"
    CALLBACK = "callback"


def _check_callback(name: str, value: Any) -> None:
    if value is not None and not callable(value):
        raise TaskConfigError(f"{name} must be callable, got {type(value).__name__}")


@dataclass(slots=True, frozen=True)
class TaskConfig:
    """
    Resolved execution settings for a single task.

    Constraints are enforced at construction:
    - sync=False requires execute_in; sync=True forbids it
    - execute_in=CALLBACK requires a non-negative timeout (seconds); other modes forbid it
    - retry_on_fail=True requires retry_count; retry_on_fail=False forbids it

    `execute` is not read by the scheduler; it is left for callers that gate tasks themselves.
    """

    sync: bool = True
    execute_in: ExecuteIn | None = None
    timeout: float | None = None
    context: Any = None
    args: tuple[Any, ...] = ()
    execute: bool = True
    retry_on_fail: bool = False
    retry_count: int | None = None

    on_success: Callable[[Any], Any] | None = None
    on_error: Callable[[BaseException], Any] | None = None
    on_retry: Callable[[BaseException, int], Any] | None = None
    on_finally: Callable[[], Any] | None = None

    def __post_init__(self) -> None:
        for name in ("sync", "execute", "retry_on_fail"):
            if not isinstance(getattr(self, name), bool):
                raise TaskConfigError(f"{name} must be a bool")

        # Frozen dataclass: normalise through object.__setattr__.
        object.__setattr__(self, "args", tuple(self.args))

        if self.sync:
            if self.execute_in is not None:
                raise TaskConfigError("execute_in is only allowed when sync=False")
        else:
            if self.execute_in is None:
                raise TaskConfigError("sync=False requires execute_in ('microTasks' or 'callback')")
            try:
                object.__setattr__(self, "execute_in", ExecuteIn(self.execute_in))
            except ValueError:
                raise TaskConfigError(f"unknown execute_in: {self.execute_in!r}") from None

        if self.execute_in == ExecuteIn.CALLBACK:
            if self.timeout is None:
                raise TaskConfigError("execute_in='callback' requires timeout")
            if isinstance(self.timeout, bool) or not isinstance(self.timeout, (int, float)):
                raise TaskConfigError("timeout must be a number")
            if self.timeout < 0:
                raise TaskConfigError("timeout must be non-negative")
        elif self.timeout is not None:
            raise TaskConfigError("timeout is only allowed with execute_in='callback'")

        if self.retry_on_fail:
            if self.retry_count is None:
                raise TaskConfigError("retry_on_fail=True requires retry_count")
            if isinstance(self.retry_count, bool) or not isinstance(self.retry_count, int):
                raise TaskConfigError("retry_count must be an int")
            if self.retry_count < 0:
                raise TaskConfigError("retry_count must be non-negative")
        elif self.retry_count is not None:
            raise TaskConfigError("retry_count is only allowed with retry_on_fail=True")

        _check_callback("on_success", self.on_success)
        _check_callback("on_error", self.on_error)
        _check_callback("on_retry", self.on_retry)
        _check_callback("on_finally", self.on_finally)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None = None) -> TaskConfig:
        """
        Build a config from caller options merged over the defaults.

        Unknown keys are rejected, and a caller-supplied retry_count must be positive
        (zero is only reached by retry decrement).
        """
        opts = dict(raw or {})
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(opts) - known)
        if unknown:
            raise TaskConfigError(f"unknown task config option(s): {', '.join(unknown)}")

        count = opts.get("retry_count")
        if opts.get("retry_on_fail") is True and isinstance(count, int) and not isinstance(count, bool):
            if count < 1:
                raise TaskConfigError("retry_count must be a positive integer")

        return cls(**opts)

    def for_retry(self) -> TaskConfig:
        """Same config with one retry attempt consumed."""
        if not self.retry_on_fail or not self.retry_count:
            raise TaskConfigError("no retry attempts left")
        return dataclasses.replace(self, retry_count=self.retry_count - 1)

    @property
    def can_retry(self) -> bool:
        return bool(self.retry_on_fail and self.retry_count and self.retry_count > 0)


@dataclass(slots=True, frozen=True)
class Task:
    fn: TaskCallable
    id: str
    config: TaskConfig

    def invoke(self) -> Any:
        """Call the task with its context (as the first positional argument, if set) and args."""
        cfg = self.config
        if cfg.context is not None:
            return self.fn(cfg.context, *cfg.args)
        return self.fn(*cfg.args)
