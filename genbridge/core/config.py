"""
Runtime settings for the genbridge package.

Settings are layered:
1. Packaged defaults (genbridge/core/default_config.json)
2. The user file (~/.genbridge/config.json, or the path in GENBRIDGE_CONFIG),
   holding only the keys the user changed
3. In-process overrides made with set_config_value(..., save=False)

Keys are addressed with dot paths such as "graph_executor.poll_interval".
Provider profiles and API keys are not settings: the host application owns
them and passes them in with each generation call.
"""

import os
import json
from typing import Dict, Any, Optional

from genbridge.core.error_handler import ConfigurationError

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "default_config.json")
USER_CONFIG_PATH = os.environ.get("GENBRIDGE_CONFIG") or os.path.expanduser("~/.genbridge/config.json")

_config_cache: Dict[str, Any] = {}


def _read_json(path: str) -> Dict[str, Any]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read settings file {path}: {e}", component="config")
    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {path} must contain a JSON object", component="config")
    return data


def load_defaults() -> Dict[str, Any]:
    """The packaged default settings."""
    return _read_json(DEFAULT_CONFIG_PATH)


def load_config() -> Dict[str, Any]:
    """
    Build the effective settings: defaults with the user file merged on top.

    Returns:
        Dict[str, Any]: The merged settings

    Raises:
        ConfigurationError: If a settings file exists but is not a JSON object
    """
    config = load_defaults()
    if os.path.exists(USER_CONFIG_PATH):
        deep_merge(config, _read_json(USER_CONFIG_PATH))
    return config


def get_config(reload: bool = False) -> Dict[str, Any]:
    """
    The cached effective settings.

    Args:
        reload (bool): Re-read the settings files

    Returns:
        Dict[str, Any]: The settings dictionary
    """
    global _config_cache

    if not _config_cache or reload:
        _config_cache = load_config()

    return _config_cache


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """
    Merge ``override`` into ``base`` in place.

    Nested dictionaries are merged key by key; any other value in
    ``override`` replaces the one in ``base``.
    """
    for key, value in override.items():
        if isinstance(base.get(key), dict) and isinstance(value, dict):
            deep_merge(base[key], value)
        else:
            base[key] = value


def changed_settings(config: Dict[str, Any], defaults: Dict[str, Any]) -> Dict[str, Any]:
    """
    The part of ``config`` that differs from ``defaults``.

    Returns:
        Dict[str, Any]: Nested dictionary of changed keys only
    """
    changed = {}
    for key, value in config.items():
        default = defaults.get(key)
        if isinstance(value, dict) and isinstance(default, dict):
            nested = changed_settings(value, default)
            if nested:
                changed[key] = nested
        elif key not in defaults or value != default:
            changed[key] = value
    return changed


def save_user_config(config: Dict[str, Any]) -> None:
    """
    Write the settings that differ from the defaults to the user file.

    Args:
        config (Dict[str, Any]): Effective settings to persist
    """
    directory = os.path.dirname(USER_CONFIG_PATH)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(USER_CONFIG_PATH, 'w', encoding='utf-8') as f:
        json.dump(changed_settings(config, load_defaults()), f, indent=2)


def _split_key(key: str):
    parts = key.split('.')
    if not all(parts):
        raise ValueError(f"Invalid settings key: {key!r}")
    return parts


def get_config_value(key: str, default: Any = None) -> Any:
    """
    Read one setting by dot path.

    Examples:
        >>> get_config_value('graph_executor.max_polls', 90)
        90

        >>> get_config_value('nonexistent.key', 'default-value')
        'default-value'

    Args:
        key (str): Dot path of the setting
        default (Any): Returned when any part of the path is missing

    Returns:
        Any: The setting or ``default``
    """
    current: Optional[Any] = get_config()
    for part in _split_key(key):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def set_config_value(key: str, value: Any, save: bool = True) -> None:
    """
    Change one setting by dot path, creating intermediate sections.

    Examples:
        >>> set_config_value('graph_executor.poll_interval', 0.5, save=False)

    Args:
        key (str): Dot path of the setting
        value (Any): New value
        save (bool): Also persist the change to the user file
    """
    parts = _split_key(key)
    section = get_config()

    for part in parts[:-1]:
        if not isinstance(section.get(part), dict):
            section[part] = {}
        section = section[part]
    section[parts[-1]] = value

    if save:
        save_user_config(get_config())
