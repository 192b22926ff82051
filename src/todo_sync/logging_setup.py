# src/todo_sync/logging_setup.py

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Console thresholds for our own chatty modules. The file log keeps everything.
# Per-keystroke enrichment and per-row store events would drown the prompt.
CONSOLE_THRESHOLDS: dict[str, int] = {
    "todo_sync.enrichment.pipeline": logging.WARNING,
    "todo_sync.enrichment.service": logging.WARNING,
    "todo_sync.tasks.task_store": logging.WARNING,
}

# HTTP client libraries log every request at INFO/DEBUG.
LIBRARY_LEVELS: dict[str, int] = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "openai": logging.WARNING,
}


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the REPL readable.

    todo_sync records pass unless their module has a stricter threshold;
    captured warnings and third-party records only show at ERROR+.
    """

    def __init__(self, thresholds: Mapping[str, int]) -> None:
        super().__init__()
        # Longest prefix first so "a.b.c" beats "a.b".
        self._thresholds = sorted(thresholds.items(), key=lambda kv: len(kv[0]), reverse=True)

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name != "todo_sync" and not name.startswith("todo_sync."):
            return record.levelno >= logging.ERROR

        for prefix, level in self._thresholds:
            if name == prefix or name.startswith(prefix + "."):
                return record.levelno >= level
        return True


def setup_logging(
    *,
    log_dir: str | Path = ".local/todo-sync",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    console_thresholds: Mapping[str, int] | None = None,
) -> Path:
    """
    Console handler (short lines, filtered) + rotating file handler (full detail).

    Replaces any handlers already on the root logger, so calling it twice
    does not duplicate output. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "todo-sync.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    # The console connector prefixes its own timestamps.
    console.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    console.addFilter(_ConsoleNoiseFilter(CONSOLE_THRESHOLDS if console_thresholds is None else console_thresholds))
    root.addHandler(console)

    file_handler = RotatingFileHandler(log_file, maxBytes=2_000_000, backupCount=3, encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s [%(threadName)s]: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    for name, level in LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(level)

    return log_file
