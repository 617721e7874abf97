"""Executor settings: CLI > environment variables > YAML config file > defaults."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field

TIMEOUT_ENV_VAR = "NAP_TIMEOUT_MS"
RETRIES_ENV_VAR = "NAP_RETRIES"


class ExecutorSettings(BaseModel):
    """Transport options for the request executor."""

    timeout_ms: Optional[float] = Field(default=None, gt=0)
    retries: int = Field(default=0, ge=0)
    follow_redirects: bool = True
    verify_ssl: bool = True


def load_settings(
    config_path: Path | None = None,
    *,
    timeout_ms: float | None = None,
    retries: int | None = None,
) -> ExecutorSettings:
    """Build settings with priority: explicit arguments > environment > config file."""

    payload: dict[str, Any] = {}
    if config_path is not None:
        try:
            data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Config file {config_path} is not valid YAML: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError(f"Config file {config_path} must contain a mapping")
        payload.update(data)

    env_timeout = os.environ.get(TIMEOUT_ENV_VAR)
    if env_timeout:
        payload["timeout_ms"] = env_timeout
    env_retries = os.environ.get(RETRIES_ENV_VAR)
    if env_retries:
        payload["retries"] = env_retries

    if timeout_ms is not None:
        payload["timeout_ms"] = timeout_ms
    if retries is not None:
        payload["retries"] = retries
    return ExecutorSettings.model_validate(payload)
