"""Pytest configuration and fixtures for Agentic OS tests."""

import asyncio
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pytest

from agentic_os.credentials import CredentialStore, MemoryMedium
from agentic_os.models import Provider
from agentic_os.orchestrator import Orchestrator


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path: Path, monkeypatch):
    """Point every config path at a temp directory so tests never touch ~/.agentic_os."""
    home = tmp_path / "agentic_home"
    monkeypatch.setattr("agentic_os.config.BASE_DIR", home)
    monkeypatch.setattr("agentic_os.config.CONFIG_FILE", home / "config.toml")
    monkeypatch.setattr("agentic_os.config.CREDENTIALS_FILE", home / "credentials.toml")
    monkeypatch.setattr("agentic_os.config.HISTORY_FILE", home / "history.json")
    return home


class ScriptedProviderCall:
    """Provider call double with per-provider replies, delays, and failures.

    A reply that is an exception instance is raised instead of returned.
    """

    def __init__(
        self,
        replies: Optional[Dict[Provider, Union[str, Exception]]] = None,
        delays: Optional[Dict[Provider, float]] = None,
    ):
        self.replies = replies or {}
        self.delays = delays or {}
        self.calls: List[Tuple[Provider, str]] = []
        self.completed: List[Provider] = []

    async def __call__(self, provider: Provider, prompt: str) -> str:
        self.calls.append((provider, prompt))
        await asyncio.sleep(self.delays.get(provider, 0))
        reply = self.replies.get(provider, f"{provider.value} says: {prompt}")
        self.completed.append(provider)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def memory_store() -> CredentialStore:
    return CredentialStore(MemoryMedium())


@pytest.fixture
def scripted_call() -> ScriptedProviderCall:
    return ScriptedProviderCall()


@pytest.fixture
def orchestrator(scripted_call, memory_store) -> Orchestrator:
    return Orchestrator(provider_call=scripted_call, credentials=memory_store)


@pytest.fixture
def make_call():
    """Factory for ``ScriptedProviderCall`` with custom replies or delays."""
    return ScriptedProviderCall
