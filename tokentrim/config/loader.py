"""Configuration loading: camelCase JSON on disk, snake_case in memory."""

import json
import re
from pathlib import Path
from typing import Any

from loguru import logger

from tokentrim.config.schema import Config
from tokentrim.utils.helpers import ensure_dir

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def get_data_dir() -> Path:
    """Get the tokentrim data directory (~/.tokentrim)."""
    return ensure_dir(Path.home() / ".tokentrim")


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return get_data_dir() / "config.json"


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    return _CAMEL_BOUNDARY.sub(r"_\1", name).lower()


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def convert_keys(data: Any) -> Any:
    """Recursively convert dict keys from camelCase to snake_case."""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Recursively convert dict keys from snake_case to camelCase."""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file, falling back to defaults.

    Args:
        config_path: Config file path; defaults to ~/.tokentrim/config.json.

    Returns:
        Loaded configuration (defaults if the file is missing or invalid).
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return Config(**convert_keys(data))
        except (json.JSONDecodeError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Using default configuration.")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Save configuration to file in camelCase.

    Args:
        config: Configuration to save.
        config_path: Target path; defaults to ~/.tokentrim/config.json.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump())
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
