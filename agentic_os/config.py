"""Configuration paths and defaults for local Agentic OS state."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("AGENTIC_OS_HOME", str(Path.home() / ".agentic_os"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"
CREDENTIALS_FILE = BASE_DIR / "credentials.toml"
HISTORY_FILE = BASE_DIR / "history.json"

# Credential medium keys look like "agentic_os_openai_key"
KEY_NAMESPACE = "agentic_os"

DEFAULT_TIMEOUT_SECONDS = 60.0


def credential_key(provider: str) -> str:
    """Medium key under which the secret for ``provider`` is stored."""
    return f"{KEY_NAMESPACE}_{provider}_key"


def ensure_base_dirs() -> None:
    """Create base directories for local storage if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
