"""Correction links between response nodes."""

from __future__ import annotations

import logging
from typing import Collection, Dict, List, Optional, Tuple

from .errors import ValidationError
from .models import CorrectionKind, CorrectionLink, LinkStatus, ResponseNode

logger = logging.getLogger(__name__)


class CorrectionGraph:
    """Insertion-ordered set of directed, typed links between nodes.

    Links reference nodes by id only; the provider names are copied onto the
    link so it can still be displayed after a node disappears.
    """

    def __init__(self):
        self._links: Dict[str, CorrectionLink] = {}

    def __len__(self) -> int:
        return len(self._links)

    def links(self) -> Tuple[CorrectionLink, ...]:
        return tuple(self._links.values())

    def get(self, link_id: str) -> Optional[CorrectionLink]:
        return self._links.get(link_id)

    def create(self, source: ResponseNode, target: ResponseNode, kind: CorrectionKind | str) -> CorrectionLink:
        """Link ``source`` to ``target``.

        Raises:
            ValidationError: if both ends are the same node or ``kind`` is unknown.
        """
        if source.id == target.id:
            raise ValidationError("Source and target must be different nodes")
        try:
            kind = CorrectionKind(kind)
        except ValueError:
            known = ", ".join(k.value for k in CorrectionKind)
            raise ValidationError(f"Unknown correction kind '{kind}'. Choose from: {known}") from None

        link = CorrectionLink(
            source_node_id=source.id,
            source_provider=source.provider,
            target_node_id=target.id,
            target_provider=target.provider,
            kind=kind,
        )
        self._links[link.id] = link
        return link

    def update(
        self,
        link_id: str,
        status: Optional[LinkStatus | str] = None,
        feedback: Optional[str] = None,
    ) -> Optional[CorrectionLink]:
        """Change a link's status and/or feedback. Unknown ids are ignored."""
        link = self._links.get(link_id)
        if link is None:
            logger.debug("Ignoring update for missing link %s", link_id)
            return None
        if status is not None:
            link.status = LinkStatus(status)
        if feedback is not None:
            link.feedback = feedback
        return link

    def remove(self, link_id: str) -> bool:
        return self._links.pop(link_id, None) is not None

    def remove_links_touching(self, node_id: str) -> List[str]:
        """Drop every link with ``node_id`` at either end; return their ids."""
        doomed = [link.id for link in self._links.values() if link.touches(node_id)]
        for link_id in doomed:
            del self._links[link_id]
        return doomed

    def prune(self, valid_node_ids: Collection[str]) -> List[str]:
        """Drop links whose source or target is not in ``valid_node_ids``."""
        valid = set(valid_node_ids)
        doomed = [
            link.id
            for link in self._links.values()
            if link.source_node_id not in valid or link.target_node_id not in valid
        ]
        for link_id in doomed:
            del self._links[link_id]
        return doomed
