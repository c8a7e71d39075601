"""In-memory registry of dispatched response nodes."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from .models import NodeStatus, ResponseNode

logger = logging.getLogger(__name__)

_UPDATABLE = {"output", "status", "error"}


class ResponseRegistry:
    """Authoritative, insertion-ordered collection of ``ResponseNode``."""

    def __init__(self):
        self._nodes: Dict[str, ResponseNode] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def add(self, node: ResponseNode) -> ResponseNode:
        if node.id in self._nodes:
            raise ValueError(f"Duplicate node id {node.id}")
        self._nodes[node.id] = node
        return node

    def get(self, node_id: str) -> Optional[ResponseNode]:
        return self._nodes.get(node_id)

    def update(self, node_id: str, **changes) -> Optional[ResponseNode]:
        """Apply ``changes`` to a node.

        Unknown ids are ignored (the node may have been removed while its
        call was in flight). A node that already reached a terminal status
        keeps it.

        Returns:
            The updated node, or None if nothing was changed.
        """
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        node = self._nodes.get(node_id)
        if node is None:
            logger.debug("Ignoring update for missing node %s", node_id)
            return None
        if node.status.is_terminal and "status" in changes:
            logger.debug("Ignoring status change on settled node %s", node_id)
            return None

        for name, value in changes.items():
            if name == "status":
                value = NodeStatus(value)
            setattr(node, name, value)
        return node

    def remove(self, node_id: str) -> bool:
        return self._nodes.pop(node_id, None) is not None

    def clear(self) -> List[str]:
        """Remove every node and return the removed ids."""
        removed = list(self._nodes)
        self._nodes.clear()
        return removed

    def nodes(self) -> Tuple[ResponseNode, ...]:
        return tuple(self._nodes.values())

    def ids(self) -> List[str]:
        return list(self._nodes)

    def in_batch(self, batch_id: str) -> List[ResponseNode]:
        return [n for n in self._nodes.values() if n.batch_id == batch_id]

    def counts(self) -> Dict[NodeStatus, int]:
        counts = {status: 0 for status in NodeStatus}
        for node in self._nodes.values():
            counts[node.status] += 1
        return counts
