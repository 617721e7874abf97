"""Step execution engine for .nap files, folders and .naplist playlists."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, Mapping, Optional

import structlog

from .assertions import evaluate, locate
from .environment import load_environment, merge_missing, resolve_request, unresolved_placeholders
from .errors import CyclicPlaylistError, ParseError, RequestError, ScriptError, TargetNotFoundError
from .http_executor import HttpExecutor
from .models import (
    PlaylistDefinition,
    PlaylistStep,
    RequestDefinition,
    ResponseCapture,
    RunResult,
    StepKind,
)
from .parser import parse_playlist, parse_request
from .scripts import ScriptOutcome, ScriptRunner

REQUEST_SUFFIX = ".nap"
PLAYLIST_SUFFIX = ".naplist"

ResultCallback = Callable[[RunResult], None]


def _read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(f"cannot read {path}: {exc}") from exc


def load_request(path: Path) -> RequestDefinition:
    return parse_request(_read_source(path))


def load_playlist(path: Path) -> PlaylistDefinition:
    return parse_playlist(_read_source(path))


def check_file(path: Path) -> RequestDefinition | PlaylistDefinition:
    """Parse a request or playlist file without running it."""

    if path.suffix == PLAYLIST_SUFFIX:
        return load_playlist(path)
    return load_request(path)


def list_request_files(folder: Path) -> list[Path]:
    """Request files directly inside ``folder``, ordered by filename."""

    return sorted(
        (entry for entry in folder.iterdir() if entry.is_file() and entry.suffix == REQUEST_SUFFIX),
        key=lambda entry: entry.name,
    )


class StepRunner:
    """Runs request files, folders and playlists strictly in order."""

    def __init__(
        self,
        *,
        executor: HttpExecutor,
        scripts: ScriptRunner | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
        on_result: ResultCallback | None = None,
    ) -> None:
        self._executor = executor
        self._logger = logger or structlog.get_logger("napper")
        self._scripts = scripts or ScriptRunner(logger=self._logger)
        self._on_result = on_result
        self._env_name: Optional[str] = None

    def run(
        self,
        target: Path,
        variables: Mapping[str, str] | None = None,
        env_name: str | None = None,
    ) -> list[RunResult]:
        """
        Run a .nap file, a .naplist playlist or a folder of .nap files.

        Raises TargetNotFoundError or ParseError when the top-level target
        itself cannot be located or parsed; failures below the top level are
        reported as failed RunResults instead.
        """

        target = target.resolve()
        base_vars = dict(variables or {})
        if not target.exists():
            raise TargetNotFoundError(f"{target} not found")

        if target.is_dir():
            files = list_request_files(target)
            if not files:
                raise TargetNotFoundError(f"No {REQUEST_SUFFIX} files found in {target}")
            self._env_name = env_name
            self._logger.info("run_started", target=str(target), kind="folder", env=self._env_name)
            results, _ = self._run_folder(target, base_vars, {})
            return results

        if target.suffix == PLAYLIST_SUFFIX:
            playlist = load_playlist(target)
            self._env_name = env_name or self._declared_environment(target, playlist, set())
            self._logger.info(
                "run_started",
                target=str(target),
                kind="playlist",
                steps=len(playlist.steps),
                env=self._env_name,
            )
            results, _ = self._run_steps(
                playlist.steps,
                target.parent,
                merge_missing(base_vars, playlist.vars),
                {},
                (target,),
            )
            return results

        definition = load_request(target)
        self._env_name = env_name
        self._logger.info("run_started", target=str(target), kind="file", env=self._env_name)
        return [self._emit(self._run_definition(target, definition, base_vars, {}))]

    def _run_steps(
        self,
        steps: list[PlaylistStep],
        base_dir: Path,
        variables: dict[str, str],
        defaults: dict[str, str],
        stack: tuple[Path, ...],
    ) -> tuple[list[RunResult], dict[str, str]]:
        results: list[RunResult] = []
        exported: dict[str, str] = {}
        for step in steps:
            step_results, step_exports = self._run_step(
                step, base_dir, {**variables, **exported}, defaults, stack
            )
            results.extend(step_results)
            exported.update(step_exports)
        return results, exported

    def _run_step(
        self,
        step: PlaylistStep,
        base_dir: Path,
        variables: dict[str, str],
        defaults: dict[str, str],
        stack: tuple[Path, ...],
    ) -> tuple[list[RunResult], dict[str, str]]:
        path = (base_dir / step.path).resolve()
        self._logger.debug("step_started", kind=step.kind.value, path=str(path))

        if step.kind is StepKind.FOLDER:
            if not path.is_dir():
                return [self._emit(_not_found(path))], {}
            return self._run_folder(path, variables, defaults)

        if step.kind is StepKind.PLAYLIST:
            return self._run_nested_playlist(path, variables, defaults, stack)

        if not path.is_file():
            return [self._emit(_not_found(path))], {}

        if step.kind is StepKind.SCRIPT:
            result = self._emit(self._run_script_step(path))
        else:
            result = self._emit(self._run_request_file(path, variables, defaults))
        return [result], dict(result.variables)

    def _run_folder(
        self,
        folder: Path,
        variables: dict[str, str],
        defaults: dict[str, str],
    ) -> tuple[list[RunResult], dict[str, str]]:
        results: list[RunResult] = []
        exported: dict[str, str] = {}
        for path in list_request_files(folder):
            result = self._emit(self._run_request_file(path, {**variables, **exported}, defaults))
            results.append(result)
            exported.update(result.variables)
        return results, exported

    def _run_nested_playlist(
        self,
        path: Path,
        variables: dict[str, str],
        defaults: dict[str, str],
        stack: tuple[Path, ...],
    ) -> tuple[list[RunResult], dict[str, str]]:
        if path in stack:
            error = CyclicPlaylistError([str(entry) for entry in (*stack, path)])
            self._logger.error("playlist_cycle", playlist=str(path), chain=error.chain)
            return [self._emit(RunResult(file=str(path), passed=False, error=str(error)))], {}
        if not path.is_file():
            return [self._emit(_not_found(path))], {}
        try:
            nested = load_playlist(path)
        except ParseError as exc:
            self._logger.error("playlist_parse_error", playlist=str(path), error=str(exc))
            return [], {}
        self._logger.info("playlist_started", playlist=str(path), steps=len(nested.steps))
        return self._run_steps(
            nested.steps,
            path.parent,
            variables,
            merge_missing(defaults, nested.vars),
            (*stack, path),
        )

    def _run_request_file(self, path: Path, variables: dict[str, str], defaults: dict[str, str]) -> RunResult:
        try:
            definition = load_request(path)
        except ParseError as exc:
            self._logger.error("parse_error", file=str(path), error=str(exc))
            return RunResult(file=str(path), passed=False, error=f"Parse error: {exc}")
        return self._run_definition(path, definition, variables, defaults)

    def _run_definition(
        self,
        path: Path,
        definition: RequestDefinition,
        variables: dict[str, str],
        defaults: dict[str, str],
    ) -> RunResult:
        logger = self._logger.bind(file=str(path))
        logger.info("file_started")
        log: list[str] = []
        exported: dict[str, str] = {}

        if definition.script.pre:
            outcome, error = self._run_hook(path.parent / definition.script.pre, None, "pre", logger)
            if outcome is not None:
                log.extend(outcome.log_lines())
                exported.update(outcome.exported_variables())
            if error is not None:
                return RunResult(
                    file=str(path),
                    request=definition.request,
                    passed=False,
                    error=error,
                    log=log,
                    variables=exported,
                )

        merged = load_environment(
            path.parent,
            self._env_name,
            {**variables, **exported},
            # nested playlist [vars] share the lowest layer with the file's own
            {**definition.vars, **defaults},
            logger=logger,
        )
        logger.debug("variables_resolved", count=len(merged))
        resolved = resolve_request(merged, definition)
        missing = unresolved_placeholders(resolved.request.url)
        if missing:
            logger.warning("unresolved_variables", url=resolved.request.url, names=missing)

        try:
            response = self._executor.execute(resolved.request)
        except RequestError as exc:
            logger.error("request_failed", error=str(exc))
            return RunResult(
                file=str(path),
                request=resolved.request,
                passed=False,
                error=f"Request failed: {exc}",
                log=log,
                variables=exported,
            )

        assertion_results = evaluate(resolved.assertions, response)
        passed_count = sum(1 for result in assertion_results if result.passed)
        logger.info("assertions_evaluated", passed=passed_count, total=len(assertion_results))
        for result in assertion_results:
            logger.debug(
                "assertion_result",
                target=result.assertion.target,
                status="PASS" if result.passed else "FAIL",
            )

        exported.update(self._capture(definition.captures, response, logger))

        error: str | None = None
        if definition.script.post:
            outcome, error = self._run_hook(
                path.parent / definition.script.post,
                _response_env(response),
                "post",
                logger,
            )
            if outcome is not None:
                log.extend(outcome.log_lines())
                exported.update(outcome.exported_variables())

        return RunResult(
            file=str(path),
            request=resolved.request,
            response=response,
            assertions=assertion_results,
            passed=error is None and passed_count == len(assertion_results),
            error=error,
            log=log,
            variables=exported,
        )

    def _run_script_step(self, path: Path) -> RunResult:
        try:
            outcome = self._scripts.run(path)
        except ScriptError as exc:
            return RunResult(file=str(path), passed=False, error=str(exc))
        return RunResult(
            file=str(path),
            passed=outcome.passed,
            error=outcome.error_message,
            log=outcome.log_lines(),
            variables=outcome.exported_variables(),
        )

    def _run_hook(
        self,
        script_path: Path,
        extra_env: Mapping[str, str] | None,
        stage: str,
        logger: structlog.stdlib.BoundLogger,
    ) -> tuple[ScriptOutcome | None, str | None]:
        try:
            outcome = self._scripts.run(script_path.resolve(), extra_env)
        except ScriptError as exc:
            logger.error("hook_failed", stage=stage, error=str(exc))
            return None, f"{stage} script: {exc}"
        if not outcome.passed:
            logger.error("hook_failed", stage=stage, exit_code=outcome.exit_code)
            return outcome, f"{stage} script: {outcome.error_message}"
        return outcome, None

    @staticmethod
    def _capture(
        captures: Mapping[str, str],
        response: ResponseCapture,
        logger: structlog.stdlib.BoundLogger,
    ) -> dict[str, str]:
        values: dict[str, str] = {}
        for name, target in captures.items():
            value = locate(target, response)
            if value is None:
                logger.warning("capture_missing", variable=name, target=target)
                continue
            values[name] = value
        return values

    def _declared_environment(
        self,
        path: Path,
        playlist: PlaylistDefinition,
        seen: set[Path],
    ) -> Optional[str]:
        """First ``env`` declared walking playlists depth-first in file order."""

        if playlist.env:
            return playlist.env
        seen.add(path)
        for step in playlist.steps:
            if step.kind is not StepKind.PLAYLIST:
                continue
            nested_path = (path.parent / step.path).resolve()
            if nested_path in seen or not nested_path.is_file():
                continue
            try:
                nested = load_playlist(nested_path)
            except ParseError:
                continue
            env = self._declared_environment(nested_path, nested, seen)
            if env:
                return env
        return None

    def _emit(self, result: RunResult) -> RunResult:
        if self._on_result is not None:
            self._on_result(result)
        return result


def _not_found(path: Path) -> RunResult:
    return RunResult(file=str(path), passed=False, error=f"Not found: {path}")


def _response_env(response: ResponseCapture) -> dict[str, str]:
    return {
        "NAP_RESPONSE_STATUS": str(response.status_code),
        "NAP_RESPONSE_BODY": response.body,
        "NAP_RESPONSE_HEADERS": json.dumps(response.headers),
        "NAP_RESPONSE_DURATION_MS": f"{response.duration_ms:.0f}",
    }
