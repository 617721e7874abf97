"""Output and log format selection shared by the CLI commands."""

import os
from enum import Enum
from typing import Callable, Literal, Optional, TypeVar, cast


class OutputFormat(str, Enum):
    """Result renderers available to ``napper run``."""
    PRETTY = "pretty"
    JUNIT = "junit"
    JSON = "json"
    NDJSON = "ndjson"


LogFormat = Literal["json", "console", "plain"]
LOG_FORMATS = ("json", "console", "plain")

OUTPUT_ENV_VAR = "NAP_OUTPUT_FORMAT"
LOG_FORMAT_ENV_VAR = "NAP_LOG_FORMAT"

_T = TypeVar("_T")


def _first_valid(candidates: tuple[Optional[str], ...], convert: Callable[[str], Optional[_T]]) -> Optional[_T]:
    for candidate in candidates:
        if not candidate:
            continue
        converted = convert(candidate.strip().lower())
        if converted is not None:
            return converted
    return None


def _as_output_format(value: str) -> Optional[OutputFormat]:
    try:
        return OutputFormat(value)
    except ValueError:
        return None


def get_output_format(cli_override: str | None = None) -> OutputFormat:
    """
    Resolve the result renderer.

    Priority: ``--output`` > ``NAP_OUTPUT_FORMAT`` > pretty. Unrecognised
    values at one level fall through to the next.
    """
    selected = _first_valid((cli_override, os.environ.get(OUTPUT_ENV_VAR)), _as_output_format)
    return selected or OutputFormat.PRETTY


def get_log_format(cli_override: str | None = None) -> LogFormat:
    """Log format with priority: CLI parameter > ``NAP_LOG_FORMAT`` > console."""
    selected = _first_valid(
        (cli_override, os.environ.get(LOG_FORMAT_ENV_VAR)),
        lambda value: value if value in LOG_FORMATS else None,
    )
    return cast(LogFormat, selected or "console")
