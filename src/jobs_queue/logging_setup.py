# src/jobs_queue/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

from .config import Settings, get_settings

PACKAGE_LOGGER = "jobs_queue"


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the console readable for applications embedding the scheduler:
    - allow jobs_queue logs
    - but keep per-event chatter (jobs_queue.events) at WARNING+ unless it was asked for
    - suppress asyncio and Python warnings (captured as 'py.warnings') unless ERROR+
    """

    def __init__(self, *, show_events: bool = False) -> None:
        super().__init__()
        self._show_events = show_events

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
            if name.startswith(PACKAGE_LOGGER + ".events") and not self._show_events:
                return record.levelno >= logging.WARNING
            return True

        # Any other 3rd party (asyncio, py.warnings, ...): only errors to console.
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path | None = None,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    show_events: bool = False,
) -> None:
    """
    Configure logging with:
    - Console handler: readable + filtered
    - File handler (only if log_dir is given): full logs for debugging

    Call this ONCE, very early (before first logger.info).
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter(show_events=show_events))
    root.addHandler(ch)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_dir / "jobs_queue.log"), encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(fmt)
        root.addHandler(fh)

    # Route warnings.warn(...) into logging as 'py.warnings'
    logging.captureWarnings(True)


def setup_logging_from_settings(settings: Settings | None = None) -> None:
    """setup_logging() driven by Settings (log level, optional file, event chatter)."""
    if settings is None:
        settings = get_settings()

    console_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    if not isinstance(console_level, int):
        console_level = logging.INFO

    setup_logging(
        log_dir=settings.log_dir if settings.log_to_file else None,
        console_level=console_level,
        show_events=settings.log_events,
    )
