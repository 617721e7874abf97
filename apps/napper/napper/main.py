"""Entry point for the napper command line."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from .config import load_settings
from .console_reporter import ConsoleReporter
from .errors import ParseError, TargetNotFoundError
from .http_executor import HttpExecutor
from .logging_utils import configure_logging
from .models import RunResult
from .output_config import OutputFormat, get_log_format, get_output_format
from .reporters import format_json, format_json_array, format_junit
from .runner import PLAYLIST_SUFFIX, StepRunner, check_file

app = typer.Typer(help="Run .nap requests, .naplist playlists and folders of requests.")

EXIT_PASSED = 0
EXIT_FAILED = 1
EXIT_ERROR = 2


def _parse_vars(pairs: list[str]) -> dict[str, str]:
    result: dict[str, str] = {}
    for item in pairs:
        if "=" not in item:
            raise typer.BadParameter("Variable overrides must be in key=value format")
        key, value = item.split("=", 1)
        key = key.strip()
        if not key:
            raise typer.BadParameter("Variable name cannot be empty")
        result[key] = value.strip()
    return result


@app.command("run")
def run_command(
    target: Path = typer.Argument(..., help="A .nap file, a .naplist playlist or a folder of .nap files."),
    env: Optional[str] = typer.Option(None, "--env", "-e", help="Environment name (loads .napenv.<name>)."),
    var: list[str] = typer.Option([], "--var", help="Variable override key=value (repeatable)."),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output: pretty, junit, json or ndjson."),
    config: Optional[Path] = typer.Option(
        None,
        exists=True,
        dir_okay=False,
        readable=True,
        help="YAML file with executor settings (timeout_ms, retries, ...).",
    ),
    timeout_ms: Optional[float] = typer.Option(None, help="Per-request timeout in milliseconds."),
    retries: Optional[int] = typer.Option(None, help="Retries on transport failures."),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug-level logging."),
    log_file: Optional[Path] = typer.Option(None, help="Write logs to this file instead of stderr."),
    log_format: Optional[str] = typer.Option(None, help="Log format: console, plain or json."),
) -> None:
    """Run a request file, playlist or folder and report the results."""

    logger = configure_logging("DEBUG" if verbose else "INFO", get_log_format(log_format), log_file)
    variables = _parse_vars(var)
    output_format = get_output_format(output)
    try:
        settings = load_settings(config, timeout_ms=timeout_ms, retries=retries)
    except (ValueError, ValidationError) as exc:
        raise typer.BadParameter(str(exc)) from exc

    reporter = ConsoleReporter()

    def on_result(result: RunResult) -> None:
        if output_format is OutputFormat.PRETTY:
            reporter.report_result(result)
        elif output_format is OutputFormat.NDJSON:
            typer.echo(format_json(result))

    logger.info("cli_started", target=str(target), env=env, output=output_format.value)
    with HttpExecutor(settings, logger=logger) as executor:
        runner = StepRunner(executor=executor, logger=logger, on_result=on_result)
        try:
            results = runner.run(target, variables, env)
        except TargetNotFoundError as exc:
            reporter.print_error(str(exc))
            raise typer.Exit(code=EXIT_ERROR) from exc
        except ParseError as exc:
            reporter.print_error(f"Parse error in {target}: {exc}")
            raise typer.Exit(code=EXIT_ERROR) from exc

    if output_format is OutputFormat.JUNIT:
        typer.echo(format_junit(results), nl=False)
    elif output_format is OutputFormat.JSON:
        single = target.is_file() and target.suffix != PLAYLIST_SUFFIX
        typer.echo(format_json(results[0]) if single else format_json_array(results))
    elif output_format is OutputFormat.PRETTY:
        reporter.finish_run(results)

    exit_code = EXIT_PASSED if all(result.passed for result in results) else EXIT_FAILED
    logger.info("cli_finished", results=len(results), exit_code=exit_code)
    raise typer.Exit(code=exit_code)


@app.command("check")
def check_command(
    file: Path = typer.Argument(..., help="A .nap or .naplist file to validate."),
) -> None:
    """Validate a request or playlist file without running it."""

    if not file.is_file():
        typer.secho(f"Error: {file} not found", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_ERROR)
    try:
        check_file(file)
    except ParseError as exc:
        typer.secho(f"✗ {file.name}", fg=typer.colors.RED, err=True)
        typer.echo(f"  {exc}", err=True)
        raise typer.Exit(code=EXIT_FAILED) from exc
    typer.secho(f"✓ {file.name} is valid", fg=typer.colors.GREEN)


def main() -> None:
    """Console_scripts hook."""

    app()


if __name__ == "__main__":  # pragma: no cover
    main()
