"""Orchestration facade coordinating dispatch, registry, history, and links."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import httpx

from . import config_manager, events, validation
from .corrections import CorrectionGraph
from .credentials import CredentialStore
from .dispatch import DispatchCall, DispatchEngine
from .errors import ValidationError
from .history import HistoryLedger
from .llm import HttpProviderCall, MockProviderCall, ProviderCall
from .models import (
    CorrectionKind,
    CorrectionLink,
    DispatchOutcome,
    HistoryEntry,
    LinkStatus,
    Provider,
    ResponseNode,
    ValidationOutcome,
    new_id,
)
from .registry import ResponseRegistry

logger = logging.getLogger(__name__)


@dataclass
class FanOutBatch:
    """Handle for one in-flight fan-out call."""

    id: str
    prompt: str
    providers: Tuple[Provider, ...]
    nodes: List[ResponseNode]
    tags: Tuple[str, ...] = ()
    tasks: List["asyncio.Task[DispatchOutcome]"] = field(default_factory=list)
    settled: Optional["asyncio.Future[HistoryEntry]"] = None
    settle_task: Optional["asyncio.Task[None]"] = None

    @property
    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    async def wait(self) -> HistoryEntry:
        """Wait until every call has settled and the history entry exists."""
        if self.settled is None:
            raise RuntimeError(f"Fan-out batch {self.id} was never started")
        return await asyncio.shield(self.settled)


class Orchestrator:
    """Single owner of all orchestrator state.

    Readers get immutable snapshots through ``nodes``, ``history`` and
    ``links``; every change goes through the methods below and is announced
    on ``bus``.
    """

    def __init__(
        self,
        provider_call: Optional[ProviderCall] = None,
        credentials: Optional[CredentialStore] = None,
        timeout: Optional[float] = None,
        bus: Optional[events.EventBus] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.credentials = credentials if credentials is not None else CredentialStore()
        self.http_client = http_client
        self.engine = DispatchEngine(
            provider_call or HttpProviderCall(self.credentials, client=http_client),
            timeout=timeout,
        )
        self.bus = bus or events.EventBus()
        self._registry = ResponseRegistry()
        self._history = HistoryLedger()
        self._links = CorrectionGraph()
        self._active: Dict[str, FanOutBatch] = {}

    @classmethod
    def from_config(cls, mock: bool = False, mock_delay: Tuple[float, float] = (1.0, 3.0)) -> "Orchestrator":
        """Build an orchestrator from the user's config and credential files."""
        provider_call: Optional[ProviderCall] = None
        if mock:
            provider_call = MockProviderCall(*mock_delay)
        return cls(provider_call=provider_call, timeout=config_manager.get_timeout())

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> Tuple[ResponseNode, ...]:
        return self._registry.nodes()

    @property
    def history(self) -> Tuple[HistoryEntry, ...]:
        return self._history.entries()

    @property
    def links(self) -> Tuple[CorrectionLink, ...]:
        return self._links.links()

    def get_node(self, node_id: str) -> Optional[ResponseNode]:
        return self._registry.get(node_id)

    def find_node(self, prefix: str) -> Optional[ResponseNode]:
        """Resolve a node by full id or unique id prefix."""
        node = self._registry.get(prefix)
        if node is not None:
            return node
        matches = [n for n in self._registry.nodes() if n.id.startswith(prefix)]
        return matches[0] if len(matches) == 1 else None

    @property
    def active_batches(self) -> List[FanOutBatch]:
        return list(self._active.values())

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def start_fan_out(
        self,
        prompt: str,
        providers: Iterable[Provider | str],
        tags: Sequence[str] = (),
    ) -> FanOutBatch:
        """Register one pending node per provider and start their calls.

        All pending nodes exist before this returns, and before any call
        can complete. Must be called from inside a running event loop.

        Raises:
            ValidationError: blank prompt or no providers; nothing is changed.
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt cannot be empty")
        selected = Provider.parse_many(providers)
        if not selected:
            raise ValidationError("Select at least one provider")
        loop = asyncio.get_running_loop()

        batch_id = new_id()
        nodes = []
        for provider in selected:
            node = self._registry.add(ResponseNode(provider=provider, prompt=prompt, batch_id=batch_id))
            nodes.append(node)
            self.bus.emit(events.NODE_ADDED, node=node)

        batch = FanOutBatch(id=batch_id, prompt=prompt, providers=selected, nodes=nodes, tags=tuple(tags))
        batch.settled = loop.create_future()
        self._active[batch_id] = batch
        logger.info("Fan-out %s: %d provider(s)", batch_id[:8], len(selected))

        calls = [DispatchCall(node.id, node.provider, prompt) for node in nodes]
        batch.tasks = self.engine.dispatch(calls, self._apply_outcome)
        batch.settle_task = loop.create_task(self._settle(batch), name=f"settle-{batch_id[:8]}")
        return batch

    async def fan_out(
        self,
        prompt: str,
        providers: Iterable[Provider | str],
        tags: Sequence[str] = (),
    ) -> HistoryEntry:
        """Send ``prompt`` to every provider and wait for all of them.

        Returns:
            The history entry recorded for the batch.
        """
        batch = self.start_fan_out(prompt, providers, tags=tags)
        return await batch.wait()

    async def drain(self) -> None:
        """Wait for every in-flight batch to settle."""
        while self._active:
            await asyncio.gather(*(b.wait() for b in list(self._active.values())))

    def _apply_outcome(self, node_id: str, outcome: DispatchOutcome) -> None:
        node = self._registry.update(node_id, status=outcome.status, output=outcome.text, error=outcome.reason)
        if node is None:
            logger.debug("Discarding result for node %s: removed or already settled", node_id)
            return
        self.bus.emit(events.NODE_UPDATED, node=node)

    async def _settle(self, batch: FanOutBatch) -> None:
        try:
            await asyncio.gather(*batch.tasks, return_exceptions=True)
            # Nodes removed while in flight are left out of the snapshot
            snapshot = [n for n in (self._registry.get(i) for i in batch.node_ids) if n is not None]
            entry = self._history.record(batch.prompt, batch.providers, batch.tags, snapshot)
            logger.info(
                "Fan-out %s settled: %d/%d node(s) recorded",
                batch.id[:8],
                len(snapshot),
                len(batch.nodes),
            )
            self.bus.emit(events.HISTORY_RECORDED, entry=entry)
            batch.settled.set_result(entry)
        except Exception as exc:
            logger.exception("Failed to settle fan-out %s", batch.id)
            batch.settled.set_exception(exc)
        finally:
            self._active.pop(batch.id, None)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def remove_node(self, node_id: str) -> bool:
        """Delete a node and every correction link touching it."""
        if not self._registry.remove(node_id):
            return False
        self.bus.emit(events.NODE_REMOVED, node_id=node_id)
        for link_id in self._links.remove_links_touching(node_id):
            self.bus.emit(events.LINK_REMOVED, link_id=link_id)
        return True

    def clear_nodes(self) -> int:
        removed = self._registry.clear()
        for link_id in self._links.prune(self._registry.ids()):
            self.bus.emit(events.LINK_REMOVED, link_id=link_id)
        self.bus.emit(events.NODES_CLEARED, node_ids=removed)
        return len(removed)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def search_history(self, query: str = "", tag: Optional[str] = None) -> List[HistoryEntry]:
        return self._history.search(query, tag)

    def history_tags(self) -> List[str]:
        return self._history.all_tags()

    def get_history_entry(self, entry_id: str) -> Optional[HistoryEntry]:
        return self._history.get(entry_id)

    def tag_history_entry(self, entry_id: str, tags: Iterable[str]) -> Optional[HistoryEntry]:
        entry = self._history.set_tags(entry_id, tags)
        if entry is not None:
            self.bus.emit(events.HISTORY_UPDATED, entry=entry)
        return entry

    def remove_history_entry(self, entry_id: str) -> bool:
        removed = self._history.remove(entry_id)
        if removed:
            self.bus.emit(events.HISTORY_REMOVED, entry_id=entry_id)
        return removed

    @property
    def ledger(self) -> HistoryLedger:
        return self._history

    def save_history(self, path: Path) -> int:
        """Export the session history to ``path``, keeping entries saved there before.

        Raises:
            HistoryFileError: an existing file at ``path`` cannot be read.
        """
        count = self._history.save_merged(path)
        logger.info("Saved %d history entries to %s", count, path)
        return count

    # ------------------------------------------------------------------
    # Correction links
    # ------------------------------------------------------------------

    def create_link(self, source_id: str, target_id: str, kind: CorrectionKind | str = CorrectionKind.CODE_REVIEW) -> CorrectionLink:
        """Create a pending correction link between two registry nodes.

        Raises:
            ValidationError: self-link, unknown kind, or an unknown node id.
        """
        if source_id == target_id:
            raise ValidationError("Source and target must be different nodes")
        source = self._registry.get(source_id)
        target = self._registry.get(target_id)
        if source is None or target is None:
            missing = source_id if source is None else target_id
            raise ValidationError(f"Unknown node '{missing}'")
        link = self._links.create(source, target, kind)
        self.bus.emit(events.LINK_ADDED, link=link)
        return link

    def update_link(
        self,
        link_id: str,
        status: Optional[LinkStatus | str] = None,
        feedback: Optional[str] = None,
    ) -> Optional[CorrectionLink]:
        link = self._links.update(link_id, status=status, feedback=feedback)
        if link is not None:
            self.bus.emit(events.LINK_UPDATED, link=link)
        return link

    def remove_link(self, link_id: str) -> bool:
        removed = self._links.remove(link_id)
        if removed:
            self.bus.emit(events.LINK_REMOVED, link_id=link_id)
        return removed

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    @staticmethod
    def clean_secret(secret: Optional[str]) -> str:
        """Strip ``secret``; raise ValidationError if nothing is left."""
        if not secret or not secret.strip():
            raise ValidationError("API key cannot be empty")
        return secret.strip()

    def save_credential(self, provider: Provider | str, secret: str) -> None:
        provider = Provider.parse(provider)
        self.credentials.save(provider, self.clean_secret(secret))
        self.bus.emit(events.CREDENTIAL_SAVED, provider=provider)

    def delete_credential(self, provider: Provider | str) -> None:
        provider = Provider.parse(provider)
        self.credentials.delete(provider)
        self.bus.emit(events.CREDENTIAL_DELETED, provider=provider)

    def get_credential(self, provider: Provider | str) -> Optional[str]:
        return self.credentials.get(Provider.parse(provider))

    def configured_providers(self) -> List[Provider]:
        return self.credentials.list_present()

    async def validate_credential(self, provider: Provider | str, secret: Optional[str] = None) -> ValidationOutcome:
        """Validate ``secret`` (or the stored key when omitted) for ``provider``."""
        provider = Provider.parse(provider)
        if secret is None:
            secret = self.credentials.get(provider) or ""
        return await validation.validate(provider, secret, client=self.http_client)
