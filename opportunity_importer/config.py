"""Configuration helpers for the opportunity import wizard."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .models import Pipeline, Stage

LOGGER = logging.getLogger(__name__)

CONFIG_ENV_VAR = "OPPORTUNITY_IMPORTER_CONFIG"

# Delay between two outreach messages of a batch. The standalone bulk outreach
# panel has used 10_000 (about six messages per minute) while the wizard used
# 5_000; deployments that need the slower pace set ``outreach_delay_ms``.
DEFAULT_OUTREACH_DELAY_MS = 5_000


class ConfigurationError(RuntimeError):
    """Raised when configuration files are missing or malformed."""


_SUPPORTED_EXTENSIONS = {".json", ".yaml", ".yml"}


@dataclass
class ImporterSettings:
    """Tunable timings of the import and outreach flow."""

    outreach_delay_ms: int = DEFAULT_OUTREACH_DELAY_MS
    results_grace_seconds: float = 2.0
    call_timeout_seconds: Optional[float] = 30.0
    poll_interval_seconds: float = 5.0
    max_wait_seconds: float = 300.0


def load_configuration(path: str | Path) -> Dict[str, Any]:
    """Load configuration data from a JSON or YAML file."""

    file_path = Path(path)
    if not file_path.exists():
        raise ConfigurationError(f"Configuration file '{file_path}' was not found")

    if file_path.suffix.lower() not in _SUPPORTED_EXTENSIONS:
        raise ConfigurationError(
            f"Unsupported configuration format '{file_path.suffix}'. Supported extensions: {sorted(_SUPPORTED_EXTENSIONS)}"
        )

    text = file_path.read_text(encoding="utf-8")
    if file_path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        import yaml

        data = yaml.safe_load(text)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file '{file_path}' must contain a mapping at the top level")
    return data


def settings_from_config(config: Mapping[str, Any]) -> ImporterSettings:
    """Build :class:`ImporterSettings` from the optional ``settings`` section."""

    raw = config.get("settings") or {}
    known = {item.name for item in fields(ImporterSettings)}
    unknown = sorted(set(raw) - known)
    if unknown:
        LOGGER.warning("Ignoring unknown settings: %s", ", ".join(unknown))

    settings = ImporterSettings()
    try:
        if "outreach_delay_ms" in raw:
            settings.outreach_delay_ms = int(raw["outreach_delay_ms"])
        if "results_grace_seconds" in raw:
            settings.results_grace_seconds = float(raw["results_grace_seconds"])
        if "call_timeout_seconds" in raw:
            timeout = raw["call_timeout_seconds"]
            settings.call_timeout_seconds = None if timeout is None else float(timeout)
        if "poll_interval_seconds" in raw:
            settings.poll_interval_seconds = float(raw["poll_interval_seconds"])
        if "max_wait_seconds" in raw:
            settings.max_wait_seconds = float(raw["max_wait_seconds"])
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid settings value: {exc}") from exc

    if settings.outreach_delay_ms < 0:
        raise ConfigurationError("outreach_delay_ms must not be negative")
    if settings.call_timeout_seconds is not None and settings.call_timeout_seconds <= 0:
        raise ConfigurationError("call_timeout_seconds must be positive or null")
    if settings.poll_interval_seconds <= 0:
        raise ConfigurationError("poll_interval_seconds must be positive")
    return settings


def pipeline_from_config(config: Mapping[str, Any]) -> Pipeline:
    raw = config.get("pipeline")
    if not raw or not raw.get("id"):
        raise ConfigurationError("Configuration missing required 'pipeline.id' field")

    stages = []
    for stage_cfg in raw.get("stages", []):
        if not stage_cfg.get("id"):
            raise ConfigurationError("Every pipeline stage needs an 'id'")
        stages.append(
            Stage(
                id=str(stage_cfg["id"]),
                stage_name=str(stage_cfg.get("stage_name") or stage_cfg["id"]),
                opening_message=bool(stage_cfg.get("opening_message", False)),
            )
        )
    if not stages:
        LOGGER.warning("Pipeline %s has no stages configured", raw["id"])

    return Pipeline(
        id=str(raw["id"]),
        pipeline_name=str(raw.get("pipeline_name", "")),
        connector_account_id=raw.get("connector_account_id"),
        stages=tuple(stages),
    )


__all__ = [
    "CONFIG_ENV_VAR",
    "DEFAULT_OUTREACH_DELAY_MS",
    "ConfigurationError",
    "ImporterSettings",
    "load_configuration",
    "pipeline_from_config",
    "settings_from_config",
]
