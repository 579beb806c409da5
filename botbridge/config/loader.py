"""Configuration loading utilities."""

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from botbridge.config.schema import Config


def get_botbridge_home() -> Path:
    """Get the botbridge home directory (~/.botbridge)."""
    return Path.home() / ".botbridge"


def get_config_path() -> Path:
    """Get the configuration file path."""
    return get_botbridge_home() / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional explicit path to config file.

    Returns:
        Loaded configuration object.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return Config.model_validate(convert_keys(data))
        except (json.JSONDecodeError, ValidationError, ValueError) as e:
            print(f"Warning: Failed to load config from {path}: {e}")
            print("Using default configuration.")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional explicit path. Uses the default if not provided.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    # Convert to camelCase format
    data = config.model_dump(by_alias=True)
    data = convert_to_camel(data)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Key conversion helpers
# ---------------------------------------------------------------------------

# Maps keyed by user-chosen ids; their keys are data, not field names
_OPAQUE_KEY_MAPS = {"accounts"}


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic."""
    if isinstance(data, dict):
        return {
            camel_to_snake(k): (
                {ik: convert_keys(iv) for ik, iv in v.items()}
                if k in _OPAQUE_KEY_MAPS and isinstance(v, dict)
                else convert_keys(v)
            )
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase."""
    if isinstance(data, dict):
        return {
            snake_to_camel(k): (
                {ik: convert_to_camel(iv) for ik, iv in v.items()}
                if k in _OPAQUE_KEY_MAPS and isinstance(v, dict)
                else convert_to_camel(v)
            )
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
