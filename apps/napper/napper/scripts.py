"""External script collaborator for script steps and [script] hooks."""

from __future__ import annotations

import os
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

import structlog

from .errors import ScriptError

SET_PREFIX = "::set "

INTERPRETERS: dict[str, list[str]] = {
    ".py": [sys.executable],
    ".sh": ["bash"],
    ".fsx": ["dotnet", "fsi"],
    ".csx": ["dotnet", "script"],
}


@dataclass
class ScriptOutcome:
    """What a finished script reports back: exit code and captured output."""

    exit_code: int
    stdout_lines: list[str] = field(default_factory=list)
    stderr: str = ""

    @property
    def passed(self) -> bool:
        return self.exit_code == 0

    @property
    def error_message(self) -> str | None:
        if self.passed:
            return None
        if self.stderr.strip():
            return self.stderr.strip()
        return f"Script exited with code {self.exit_code}"

    def exported_variables(self) -> dict[str, str]:
        """Collect ``::set name=value`` lines printed by the script."""

        exported: dict[str, str] = {}
        for line in self.stdout_lines:
            if not line.startswith(SET_PREFIX) or "=" not in line:
                continue
            name, value = line[len(SET_PREFIX):].split("=", 1)
            if name.strip():
                exported[name.strip()] = value
        return exported

    def log_lines(self) -> list[str]:
        return [line for line in self.stdout_lines if not line.startswith(SET_PREFIX)]


class ScriptRunner:
    """Runs a script file to completion with an interpreter picked by suffix."""

    def __init__(
        self,
        interpreters: Mapping[str, list[str]] | None = None,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self.interpreters = dict(interpreters or INTERPRETERS)
        self._logger = logger or structlog.get_logger("napper")

    def run(self, script_path: Path, extra_env: Mapping[str, str] | None = None) -> ScriptOutcome:
        command = self._command(script_path)
        env = {**os.environ, **(extra_env or {})}
        self._logger.info("script_started", script=str(script_path))
        try:
            completed = subprocess.run(
                command,
                cwd=script_path.parent,
                env=env,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            self._logger.error("script_start_failed", script=str(script_path), error=str(exc))
            raise ScriptError(f"Script failed to start: {exc}") from exc

        outcome = ScriptOutcome(
            exit_code=completed.returncode,
            stdout_lines=[line.rstrip("\r") for line in completed.stdout.splitlines() if line.strip()],
            stderr=completed.stderr,
        )
        self._logger.info("script_finished", script=str(script_path), exit_code=outcome.exit_code)
        return outcome

    def _command(self, script_path: Path) -> list[str]:
        if not script_path.is_file():
            raise ScriptError(f"Script failed to start: {script_path} not found")
        interpreter = self.interpreters.get(script_path.suffix.lower())
        if interpreter is None:
            raise ScriptError(f"No interpreter configured for {script_path.suffix} scripts")
        return [*interpreter, str(script_path)]
