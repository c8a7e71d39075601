"""Provider credential store on top of a pluggable key-value medium."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Protocol

import toml

from . import config
from .config import credential_key
from .models import Provider

logger = logging.getLogger(__name__)


class CredentialMedium(Protocol):
    """Durable string key-value storage."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryMedium:
    """Process-local medium, used for tests and throwaway sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class TomlFileMedium:
    """Medium backed by a flat ``[credentials]`` table in a TOML file."""

    SECTION = "credentials"

    def __init__(self, path: Optional[Path] = None):
        self.path = path or config.CREDENTIALS_FILE

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = toml.load(f)
        return dict(data.get(self.SECTION, {}))

    def _dump(self, values: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            toml.dump({self.SECTION: values}, f)
        try:
            self.path.chmod(0o600)
        except OSError:
            logger.debug("Could not restrict permissions on %s", self.path)

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        values = self._load()
        values[key] = value
        self._dump(values)

    def delete(self, key: str) -> None:
        values = self._load()
        if values.pop(key, None) is not None:
            self._dump(values)


class CredentialStore:
    """Maps each provider to at most one secret.

    Every operation is total: if the medium raises, the failure is logged
    and the call degrades to a no-op (or "absent" for reads).
    """

    def __init__(self, medium: Optional[CredentialMedium] = None):
        self.medium: CredentialMedium = medium if medium is not None else TomlFileMedium()

    def save(self, provider: Provider, secret: str) -> None:
        try:
            self.medium.set(credential_key(provider.value), secret)
        except Exception as exc:
            logger.warning("Failed to save %s key: %s", provider.value, exc)

    def get(self, provider: Provider) -> Optional[str]:
        try:
            return self.medium.get(credential_key(provider.value))
        except Exception as exc:
            logger.warning("Failed to retrieve %s key: %s", provider.value, exc)
            return None

    def has(self, provider: Provider) -> bool:
        return self.get(provider) is not None

    def delete(self, provider: Provider) -> None:
        try:
            self.medium.delete(credential_key(provider.value))
        except Exception as exc:
            logger.warning("Failed to delete %s key: %s", provider.value, exc)

    def list_present(self) -> List[Provider]:
        """Providers with a stored secret, in canonical provider order."""
        return [p for p in Provider if self.has(p)]


def mask_secret(secret: str) -> str:
    """Render a secret for display, keeping only a short prefix and suffix."""
    if len(secret) <= 8:
        return "*" * len(secret)
    return f"{secret[:4]}{'*' * (len(secret) - 8)}{secret[-4:]}"
