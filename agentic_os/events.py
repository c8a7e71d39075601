"""Change notification channel for anything rendering orchestrator state."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

NODE_ADDED = "node_added"
NODE_UPDATED = "node_updated"
NODE_REMOVED = "node_removed"
NODES_CLEARED = "nodes_cleared"
HISTORY_RECORDED = "history_recorded"
HISTORY_UPDATED = "history_updated"
HISTORY_REMOVED = "history_removed"
LINK_ADDED = "link_added"
LINK_UPDATED = "link_updated"
LINK_REMOVED = "link_removed"
CREDENTIAL_SAVED = "credential_saved"
CREDENTIAL_DELETED = "credential_deleted"


@dataclass(frozen=True)
class Event:
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)


Listener = Callable[[Event], None]


class EventBus:
    """Synchronous publish/subscribe channel.

    Listeners run in emission order on the caller's thread. A listener that
    raises is logged and skipped; it never undoes the state change that
    triggered the event.
    """

    def __init__(self):
        self._listeners: List[tuple[Listener, Optional[Set[str]]]] = []

    def subscribe(self, listener: Listener, *kinds: str) -> Callable[[], None]:
        """Register ``listener`` for ``kinds`` (all kinds when none given).

        Returns:
            A callable that removes the subscription.
        """
        entry = (listener, set(kinds) if kinds else None)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def emit(self, kind: str, **payload: Any) -> None:
        event = Event(kind, payload)
        for listener, kinds in list(self._listeners):
            if kinds is not None and kind not in kinds:
                continue
            try:
                listener(event)
            except Exception:
                logger.exception("Listener %r failed on %s", listener, kind)
