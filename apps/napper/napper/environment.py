"""Environment files and {{variable}} interpolation."""

from __future__ import annotations

from pathlib import Path
from typing import Mapping
import re

import structlog

from .models import RequestDefinition

ENV_FILE = ".napenv"
LOCAL_SUFFIX = "local"

PLACEHOLDER_PATTERN = re.compile(r"\{\{(\w+)\}\}")

LOGGER = structlog.get_logger("napper")


def parse_env_file(content: str) -> dict[str, str]:
    """Parse ``key = value`` lines; quotes around values are optional."""

    values: dict[str, str] = {}
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip().strip('"')
    return values


def read_env_file(path: Path) -> dict[str, str]:
    if not path.is_file():
        return {}
    return parse_env_file(path.read_text(encoding="utf-8"))


def load_environment(
    directory: Path,
    env_name: str | None,
    overrides: Mapping[str, str],
    file_defaults: Mapping[str, str],
    *,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> dict[str, str]:
    """
    Merge the variable sources for one request.

    Resolution order (later wins):
    1. ``[vars]`` defaults from the request file
    2. ``.napenv``
    3. ``.napenv.<env_name>``
    4. ``.napenv.local``
    5. caller overrides (``--var`` flags and values exported by earlier steps)
    """

    log = logger or LOGGER
    layers = [("vars", dict(file_defaults)), (ENV_FILE, read_env_file(directory / ENV_FILE))]
    if env_name:
        named = f"{ENV_FILE}.{env_name}"
        layers.append((named, read_env_file(directory / named)))
    local = f"{ENV_FILE}.{LOCAL_SUFFIX}"
    layers.append((local, read_env_file(directory / local)))
    layers.append(("overrides", dict(overrides)))

    merged: dict[str, str] = {}
    for source, values in layers:
        log.debug("variables_loaded", source=source, count=len(values))
        merged = {**merged, **values}
    return merged


def interpolate(variables: Mapping[str, str], text: str) -> str:
    """Replace known ``{{name}}`` placeholders; unknown ones are left as written."""

    def replacer(match: re.Match[str]) -> str:
        value = variables.get(match.group(1))
        return match.group(0) if value is None else value

    return PLACEHOLDER_PATTERN.sub(replacer, text)


def unresolved_placeholders(text: str) -> list[str]:
    return [match.group(1) for match in PLACEHOLDER_PATTERN.finditer(text)]


def resolve_request(variables: Mapping[str, str], definition: RequestDefinition) -> RequestDefinition:
    """Interpolate URL, header values, body content and assertion operands."""

    request = definition.request
    body = request.body
    if body is not None:
        body = body.model_copy(update={"content": interpolate(variables, body.content)})
    resolved_request = request.model_copy(
        update={
            "url": interpolate(variables, request.url),
            "headers": {key: interpolate(variables, value) for key, value in request.headers.items()},
            "body": body,
        }
    )
    assertions = [
        assertion
        if assertion.value is None
        else assertion.model_copy(update={"value": interpolate(variables, assertion.value)})
        for assertion in definition.assertions
    ]
    return definition.model_copy(update={"request": resolved_request, "assertions": assertions})


def merge_missing(base: Mapping[str, str], defaults: Mapping[str, str]) -> dict[str, str]:
    """Layer ``defaults`` under ``base``: keys already in ``base`` win."""

    return {**defaults, **base}
