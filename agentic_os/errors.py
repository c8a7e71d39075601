"""Exception types raised by the orchestration core."""

from __future__ import annotations

from typing import Optional


class AgenticOSError(Exception):
    """Base class for all Agentic OS errors."""


class ValidationError(AgenticOSError):
    """Caller input was rejected before any state was touched."""


class ProviderError(AgenticOSError):
    """A provider call was rejected, failed in transit, or returned garbage."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider
        self.message = message


class HistoryFileError(AgenticOSError):
    """A history export could not be read or is not a list of entries."""
