"""Configuration manager for Agentic OS using TOML files."""

from __future__ import annotations

import logging
from typing import Any, Dict

import toml

from . import config
from .models import Provider

logger = logging.getLogger(__name__)


# Default model per provider, the ones the credential probes were written against
DEFAULT_MODELS = {
    Provider.OPENAI: "gpt-3.5-turbo",
    Provider.GEMINI: "gemini-pro",
    Provider.DEEPSEEK: "deepseek-chat",
    Provider.QWEN: "qwen-turbo",
}


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections).

    Returns:
        Parsed config, or an empty dict when the file is missing or unreadable.
    """
    if not config.CONFIG_FILE.exists():
        return {}
    try:
        with open(config.CONFIG_FILE, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", config.CONFIG_FILE, exc)
        return {}


def _save_full_config(data: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    config.ensure_base_dirs()
    try:
        with open(config.CONFIG_FILE, "w", encoding="utf-8") as f:
            toml.dump(data, f)
        return True
    except OSError as exc:
        logger.warning("Failed to write config %s: %s", config.CONFIG_FILE, exc)
        return False


def get_model(provider: Provider) -> str:
    """Model used for ``provider``: the ``[models]`` override or the default."""
    models = load_full_config().get("models", {})
    return models.get(provider.value) or DEFAULT_MODELS[provider]


def save_model(provider: Provider, model: str) -> bool:
    """Save a model override for one provider.

    Preserves ``[dispatch]`` and other sections in the file.
    """
    data = load_full_config()
    data.setdefault("models", {})[provider.value] = model
    return _save_full_config(data)


def clear_model(provider: Provider) -> bool:
    """Drop a model override, falling back to ``DEFAULT_MODELS``."""
    data = load_full_config()
    data.get("models", {}).pop(provider.value, None)
    return _save_full_config(data)


def get_timeout() -> float:
    """Per-call dispatch timeout in seconds from ``[dispatch]``."""
    value = load_full_config().get("dispatch", {}).get("timeout", config.DEFAULT_TIMEOUT_SECONDS)
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid dispatch timeout %r, using default", value)
        return config.DEFAULT_TIMEOUT_SECONDS
    return timeout if timeout > 0 else config.DEFAULT_TIMEOUT_SECONDS


def save_timeout(seconds: float) -> bool:
    if seconds <= 0:
        raise ValueError("Timeout must be positive")
    data = load_full_config()
    data.setdefault("dispatch", {})["timeout"] = float(seconds)
    return _save_full_config(data)


def describe() -> Dict[str, Any]:
    """Effective settings, for ``aos config show``."""
    return {
        "config_file": str(config.CONFIG_FILE),
        "credentials_file": str(config.CREDENTIALS_FILE),
        "timeout": get_timeout(),
        "models": {p.value: get_model(p) for p in Provider},
    }
