import json
import os
from typing import Any, Dict, List, Optional, Tuple

CONFIG_PATH = "config.json"

# Default configuration values
DEFAULT_CONFIG = {
    # Spotify Web API (OAuth PKCE)
    # The redirect URI and scopes are fixed in spotify_library.auth and must be
    # registered in the Spotify dashboard; they are intentionally not settings.
    "spotify_client_id": "",
    "spotify_session_file": "data/spotify_session.json",
    "spotify_cache_tokens": True,
    "spotify_show_dialog": True,

    # Connect behavior
    "spotify_open_browser": True,
    "spotify_callback_server": True,
    "spotify_callback_timeout": 300,

    "http_timeout": 30,
    "log_level": "INFO",
}

# Validation rules for config fields
CONFIG_SCHEMA = {
    "spotify_client_id": {"type": str, "required": False},
    "spotify_session_file": {"type": str, "required": True},
    "spotify_cache_tokens": {"type": bool, "required": False},
    "spotify_show_dialog": {"type": bool, "required": False},

    "spotify_open_browser": {"type": bool, "required": False},
    "spotify_callback_server": {"type": bool, "required": False},
    "spotify_callback_timeout": {"type": int, "required": False, "min": 10, "max": 3600},

    "http_timeout": {"type": (int, float), "required": False, "min": 1, "max": 300},
    "log_level": {"type": str, "required": False, "choices": ["DEBUG", "INFO", "WARNING", "ERROR"]},
}


def load_config(path: str = CONFIG_PATH) -> Dict[str, Any]:
    """Load configuration from file, applying defaults for missing fields.

    A missing file is created from DEFAULT_CONFIG.
    """
    if not os.path.exists(path):
        save_config(DEFAULT_CONFIG.copy(), path)

    with open(path, "r", encoding="utf-8") as f:
        config = json.load(f)

    if not isinstance(config, dict):
        raise ValueError(f"Config file {path} must contain a JSON object.")

    # Apply defaults for missing fields
    for key, value in DEFAULT_CONFIG.items():
        if key not in config:
            config[key] = value

    return config


def save_config(config: Dict[str, Any], path: str = CONFIG_PATH) -> None:
    """Write configuration to file (OSError propagates to the caller)."""
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)
        f.write("\n")


def _describe_type(expected: Any) -> str:
    if isinstance(expected, tuple):
        return "/".join(t.__name__ for t in expected)
    return expected.__name__


def _field_error(key: str, value: Any, rules: Dict[str, Any]) -> Optional[str]:
    """Return the first problem with ``value`` under ``rules``, or None."""

    expected = rules.get("type")
    # bool is an int subclass, but a flag is never a valid number here.
    is_flag_as_number = isinstance(value, bool) and expected is not bool
    if expected is not None and (is_flag_as_number or not isinstance(value, expected)):
        return f"Field '{key}' must be {_describe_type(expected)}, got {type(value).__name__}"

    choices = rules.get("choices")
    if choices is not None and value not in choices:
        return f"Field '{key}' must be one of {choices}, got '{value}'"

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        low, high = rules.get("min"), rules.get("max")
        if low is not None and value < low:
            return f"Field '{key}' must be >= {low}, got {value}"
        if high is not None and value > high:
            return f"Field '{key}' must be <= {high}, got {value}"

    return None


def validate_config(config: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Check every schema field; returns (is_valid, errors)."""
    errors: List[str] = []
    for key, rules in CONFIG_SCHEMA.items():
        if key not in config:
            if rules.get("required"):
                errors.append(f"Missing required field: {key}")
            continue
        problem = _field_error(key, config[key], rules)
        if problem:
            errors.append(problem)
    return not errors, errors


def update_config(key: str, value: Any, path: str = CONFIG_PATH) -> Tuple[bool, str]:
    """Validate and persist one field. Returns (success, message)."""
    rules = CONFIG_SCHEMA.get(key)
    if rules is None:
        return False, f"Unknown config key: {key}"

    problem = _field_error(key, value, rules)
    if problem:
        return False, f"Validation failed: {problem}"

    config = load_config(path)
    config[key] = value
    save_config(config, path)
    return True, f"Updated '{key}' to '{value}'"
