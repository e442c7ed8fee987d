"""
Configuration management for Noteflow.

Uses XDG base directories:
- Config: ~/.config/noteflow/config.toml

Environment variables override the retry settings from config.toml.
"""

from pathlib import Path
from typing import Any
import logging
import math
import os

logger = logging.getLogger(__name__)

# XDG defaults
DEFAULT_CONFIG_HOME = Path.home() / ".config"

# Env var -> (retry key, parser, lowest accepted value)
RETRY_ENV_OVERRIDES = {
    "NOTEFLOW_MAX_RETRY_ATTEMPTS": ("max_attempts", int, 1),
    "NOTEFLOW_RETRY_INITIAL_DELAY": ("initial_delay", float, 0),
    "NOTEFLOW_RETRY_MAX_DELAY": ("max_delay", float, 0),
    "NOTEFLOW_RETRY_BACKOFF_MULTIPLIER": ("backoff_multiplier", float, 1),
    "NOTEFLOW_RETRY_JITTER": ("jitter", "bool", None),
}

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


def get_config_dir() -> Path:
    """Get the config directory (XDG_CONFIG_HOME/noteflow)."""
    base = Path(os.environ.get("XDG_CONFIG_HOME", DEFAULT_CONFIG_HOME))
    return base / "noteflow"


def get_config_path() -> Path:
    """Get the path to config.toml."""
    return get_config_dir() / "config.toml"


def load_config() -> dict[str, Any]:
    """
    Load configuration from config.toml.

    Returns default config if file doesn't exist. Tables missing from the
    file are filled from the defaults, then env overrides are applied.
    """
    config = get_default_config()
    config_path = get_config_path()

    if config_path.exists():
        # Lazy import tomli only when needed
        import tomli

        with open(config_path, "rb") as f:
            loaded = tomli.load(f)
        for section, values in loaded.items():
            if isinstance(values, dict) and isinstance(config.get(section), dict):
                config[section].update(values)
            else:
                config[section] = values

    apply_env_overrides(config)
    return config


def apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """
    Apply NOTEFLOW_* retry overrides.

    Unparseable or out-of-range values are logged and skipped. If the
    overrides leave initial_delay above max_delay, initial_delay is lowered
    to max_delay, so an env var alone never makes the retry policy invalid.
    """
    retry = config.setdefault("retry", {})
    overridden = set()

    for env_name, (key, parser, minimum) in RETRY_ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is None or not raw.strip():
            continue
        try:
            value = _parse_bool(raw) if parser == "bool" else parser(raw)
        except ValueError:
            logger.warning(f"Ignoring invalid {env_name}={raw!r}")
            continue
        if minimum is not None and not (math.isfinite(value) and value >= minimum):
            logger.warning(f"Ignoring out-of-range {env_name}={raw!r} (must be >= {minimum})")
            continue
        retry[key] = value
        overridden.add(key)

    if overridden & {"initial_delay", "max_delay"}:
        initial = retry.get("initial_delay")
        cap = retry.get("max_delay")
        if isinstance(initial, (int, float)) and isinstance(cap, (int, float)) and initial > cap:
            logger.warning(
                f"Retry initial_delay {initial}ms exceeds max_delay {cap}ms, using {cap}ms"
            )
            retry["initial_delay"] = cap

    return config


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_STRINGS:
        return True
    if value in _FALSE_STRINGS:
        return False
    raise ValueError(raw)


def get_default_config() -> dict[str, Any]:
    """Return default configuration."""
    return {
        "noteflow": {
            "locale": "en",
        },
        "retry": {
            "max_attempts": 3,
            "initial_delay": 1000,  # ms
            "backoff_multiplier": 2,
            "max_delay": 10000,  # ms
            "jitter": True,
        },
        "queue": {
            "max_concurrency": 3,
        },
        "llm": {
            "provider": "anthropic",  # or "openai"
            "model": "claude-haiku-4-5-20251001",
        },
    }
