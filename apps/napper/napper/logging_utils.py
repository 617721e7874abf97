"""Structured logging helpers for the nap runtime."""

from __future__ import annotations

import logging
import sys
from io import StringIO
from pathlib import Path
from typing import Any

import structlog
from rich.console import Console
from rich.text import Text

from .output_config import LogFormat

LOGGER_NAME = "napper"
EVENT_COLUMN = 28
HIDDEN_KEYS = frozenset({"stack", "exception"})

LEVEL_STYLES = {
    "debug": "dim cyan",
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "critical": "bold white on red",
}


class RichConsoleRenderer:
    """Render an event as ``timestamp [level] event  key=value ...`` with ANSI colours."""

    def __init__(self, width: int = 200) -> None:
        self.width = width

    def __call__(self, logger: Any, name: str, event_dict: dict[str, Any]) -> str:
        level = event_dict.pop("level", "info")
        event = str(event_dict.pop("event", ""))
        line = Text.assemble(
            (event_dict.pop("timestamp", ""), "dim white"),
            " ",
            (f"[{level:<8}]", LEVEL_STYLES.get(level, "white")),
            " ",
            (event.ljust(EVENT_COLUMN) if event_dict else event, "bold white"),
        )
        pairs = [(key, value) for key, value in sorted(event_dict.items()) if key not in HIDDEN_KEYS]
        for index, (key, value) in enumerate(pairs):
            if index:
                line.append(" ")
            line.append(f"{key}=", style="dim white")
            line.append(str(value), style="bright_cyan")
        return self._to_ansi(line)

    def _to_ansi(self, line: Text) -> str:
        buffer = StringIO()
        Console(file=buffer, force_terminal=True, width=self.width, legacy_windows=False).print(line, end="")
        return buffer.getvalue()


def _handler_for(log_file: Path | None) -> logging.Handler:
    if log_file is None:
        # stdout carries run results
        return logging.StreamHandler(sys.stderr)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(log_file, encoding="utf-8")


def _renderer_for(log_format: LogFormat, to_file: bool) -> Any:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    if log_format == "console" and not to_file:
        return RichConsoleRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def configure_logging(
    log_level: str,
    log_format: LogFormat = "console",
    log_file: Path | None = None,
) -> structlog.stdlib.BoundLogger:
    """
    Configure structlog once at startup and return the logger handed to the runtime.

    Coloured output is never written to files; a ``console`` format with
    ``log_file`` falls back to the uncoloured renderer.
    """

    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(message)s", handlers=[_handler_for(log_file)], force=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
            structlog.processors.format_exc_info,
            _renderer_for(log_format, log_file is not None),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    return structlog.get_logger(LOGGER_NAME)
