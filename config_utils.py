#!/usr/bin/env python3
"""Configuration utilities shared by the config layer and command modules."""
import json
import logging
import os
from pathlib import Path
from typing import Dict, Any, Optional
from copy import deepcopy

logger = logging.getLogger(__name__)


def load_json_config(file_path: Path, defaults: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Load a JSON state file, falling back to defaults.

    Args:
        file_path: Path to the JSON file
        defaults: Default values (optional)

    Returns:
        Dict with the file content merged over the defaults. An unreadable
        file yields the defaults only.
    """
    result = deepcopy(defaults) if defaults else {}

    if not file_path.exists():
        return result

    try:
        with open(file_path, 'r') as f:
            file_config = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Could not load %s: %s", file_path, e)
        return result

    if not isinstance(file_config, dict):
        logger.warning("Ignoring %s: expected a JSON object", file_path)
        return result

    return deep_merge(result, file_config)


def save_json_config(file_path: Path, data: Dict[str, Any]) -> None:
    """Write a JSON state file, creating its parent directory.

    Args:
        file_path: Destination path
        data: Dictionary to save
    """
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with open(file_path, 'w') as f:
        json.dump(data, f, indent=2)


def deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary
        overlay: Dictionary to merge on top (takes precedence)

    Returns:
        Merged dictionary
    """
    result = deepcopy(base)

    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def merge_configs(
    defaults: Dict[str, Any],
    env_vars: Dict[str, Any],
    file_config: Dict[str, Any],
    cli_args: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Merge settings with priority: CLI > env > file > defaults.

    Empty values never override a lower layer, so an unset flag or an
    exported-but-empty variable falls through to the next source.
    """
    result = deepcopy(defaults)

    for layer in (file_config, env_vars, cli_args or {}):
        result = deep_merge(result, _drop_empty(layer))

    return result


def _drop_empty(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v not in (None, '')}


def get_env_value(key: str, default: Any = None, value_type: type = str) -> Any:
    """Get environment variable with type conversion.

    Args:
        key: Environment variable name
        default: Default value if not found
        value_type: Type to convert to (str, int, bool, float)

    Returns:
        Environment variable value converted to specified type, or default
    """
    value = os.getenv(key)

    if value is None:
        return default

    try:
        if value_type == bool:
            return value.lower() in ('true', '1', 'yes', 'on')
        elif value_type == int:
            return int(value)
        elif value_type == float:
            return float(value)
        else:
            return str(value)
    except (ValueError, AttributeError):
        return default
