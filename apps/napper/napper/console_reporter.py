"""Console reporter with terminal detection for pretty run output."""

import os
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from .models import RunResult


class ConsoleReporter:
    """
    Pretty reporter that adapts to its environment.

    Automatically detects:
    - Interactive terminals (use rich colours and a summary panel)
    - CI/CD environments (use plain text)
    - Pipe/redirect scenarios (use plain text)
    """

    def __init__(self, force_plain: bool = False):
        self._detect_environment(force_plain)
        self.console: Optional[Console] = Console(highlight=False) if self.use_rich else None

    def _detect_environment(self, force_plain: bool) -> None:
        """Detect if we should use rich output or plain text."""
        is_terminal = sys.stdout.isatty()
        is_ci = any([
            'CI' in os.environ,
            'JENKINS_HOME' in os.environ,
            'GITLAB_CI' in os.environ,
            'TRAVIS' in os.environ,
        ])
        self.use_rich = not force_plain and is_terminal and not is_ci

    def report_result(self, result: RunResult) -> None:
        """Print one step's result as soon as it is produced."""
        status = "PASS" if result.passed else "FAIL"
        name = Path(result.file).name
        if self.use_rich:
            self.console.print(Text.assemble((f"[{status}]", "green" if result.passed else "red"), f" {name}"))
        else:
            print(f"[{status}] {name}")

        if result.error:
            self._line(f"  Error: {result.error}", "red")

        if result.response is not None and result.request is not None:
            response = result.response
            self._line(
                f"  {response.status_code} {result.request.method.value} {result.request.url}"
                f"  ({response.duration_ms:.0f}ms)",
                _status_style(response.status_code),
            )
            for assertion in result.assertions:
                icon = "✓" if assertion.passed else "✗"
                label = f"{assertion.assertion.target} {assertion.assertion.describe()}"
                self._line(f"  {icon} {label}", "green" if assertion.passed else "red")
                if not assertion.passed:
                    self._line(f"      expected: {assertion.expected}")
                    self._line(f"      actual:   {assertion.actual}")

        for line in result.log:
            self._line(f"  {line}", "dim")

    def finish_run(self, results: list[RunResult]) -> None:
        """Display the final summary."""
        total = len(results)
        passed = sum(1 for result in results if result.passed)
        failed = total - passed
        summary = f"{passed}/{total} passed ({failed} failed)"
        if self.use_rich:
            self.console.print()
            self.console.print(Panel(
                Text(summary, style="bold green" if failed == 0 else "bold red"),
                border_style="green" if failed == 0 else "red",
            ))
        else:
            print()
            print(summary)

    def print_error(self, message: str) -> None:
        """Print an error message to stderr."""
        print(f"Error: {message}", file=sys.stderr)

    def _line(self, text: str, style: str = "") -> None:
        if self.use_rich:
            self.console.print(Text(text, style=style))
        else:
            print(text)


def _status_style(status_code: int) -> str:
    if 200 <= status_code < 300:
        return "green"
    if status_code >= 400:
        return "red"
    return "yellow"
