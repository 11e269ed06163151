from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import ValidationError
import yaml

from instrumentlog.errors import ConfigurationError

from .models import ReportConfig

CONFIG_FILE_NAME = "instrumentlog.yaml"


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}") from exc
    except OSError as exc:
        raise ConfigurationError(f"Unable to read {path}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a YAML mapping in {path}")
    return data


def _resolve(value: object, base_dir: Path) -> object:
    if isinstance(value, str) and not Path(value).is_absolute():
        return str((base_dir / value).resolve())
    return value


def load_config(path: Path) -> ReportConfig:
    """Load a report config; relative paths resolve against the config file directory."""
    config_path = path
    if config_path.is_dir():
        config_path = config_path / CONFIG_FILE_NAME
    if not config_path.is_file():
        raise ConfigurationError(f"Config file not found: {config_path}")
    data = _load_yaml(config_path)
    base_dir = config_path.parent

    data["output_dir"] = _resolve(data.get("output_dir", "instrumentlog_out"), base_dir)
    devices = data.get("devices")
    if isinstance(devices, list):
        for device in devices:
            if isinstance(device, dict) and "events" in device:
                device["events"] = _resolve(device["events"], base_dir)

    try:
        return ReportConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid config {config_path}: {exc}") from exc
