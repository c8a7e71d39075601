"""Concurrent provider dispatch.

Every call runs as its own asyncio task. Completions are reported one at a
time through a callback, in whatever order they finish; a slow or failing
provider never holds up or cancels its siblings.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .errors import ProviderError
from .llm import ProviderCall
from .models import DispatchOutcome, Provider

logger = logging.getLogger(__name__)

TIMEOUT_REASON = "timeout"

ResultCallback = Callable[[str, DispatchOutcome], None]


@dataclass(frozen=True)
class DispatchCall:
    """One provider call; ``node_id`` is its correlation id."""

    node_id: str
    provider: Provider
    prompt: str


class DispatchEngine:
    """Runs provider calls concurrently on the current event loop."""

    def __init__(self, provider_call: ProviderCall, timeout: Optional[float] = None):
        self.provider_call = provider_call
        self.timeout = timeout

    def dispatch(self, calls: Sequence[DispatchCall], on_result: ResultCallback) -> List["asyncio.Task[DispatchOutcome]"]:
        """Start one task per call and return them without waiting.

        Must be called from inside a running event loop. ``on_result`` is
        invoked exactly once per call, with that call's ``node_id``.
        """
        loop = asyncio.get_running_loop()
        tasks = []
        for call in calls:
            task = loop.create_task(self._run(call, on_result), name=f"dispatch-{call.provider.value}-{call.node_id[:8]}")
            tasks.append(task)
        return tasks

    async def run(self, call: DispatchCall) -> DispatchOutcome:
        """Execute a single call and classify the result. Never raises."""
        try:
            if self.timeout:
                text = await asyncio.wait_for(self.provider_call(call.provider, call.prompt), self.timeout)
            else:
                text = await self.provider_call(call.provider, call.prompt)
        except asyncio.TimeoutError:
            logger.warning("Provider %s timed out after %ss", call.provider.value, self.timeout)
            return DispatchOutcome.failed(TIMEOUT_REASON)
        except ProviderError as exc:
            logger.warning("Provider %s failed: %s", call.provider.value, exc.message)
            return DispatchOutcome.failed(exc.message)
        except Exception as exc:
            logger.warning("Provider %s raised %s: %s", call.provider.value, type(exc).__name__, exc)
            return DispatchOutcome.failed(f"Failed to get response from {call.provider.value}: {exc}")
        if not text:
            return DispatchOutcome.failed(f"Empty response from {call.provider.value}")
        return DispatchOutcome.succeeded(text)

    async def _run(self, call: DispatchCall, on_result: ResultCallback) -> DispatchOutcome:
        outcome = await self.run(call)
        try:
            on_result(call.node_id, outcome)
        except Exception:
            logger.exception("Result handler failed for node %s", call.node_id)
        return outcome
