"""Searchable ledger of past fan-out batches."""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .errors import HistoryFileError
from .models import HistoryEntry, NodeStatus, Provider, ResponseNode

logger = logging.getLogger(__name__)


class HistoryLedger:
    """Most-recent-first list of ``HistoryEntry``.

    Recorded entries go to the front and imported ones are merged in by
    time. Existing entries never change their relative order.
    """

    def __init__(self):
        self._entries: List[HistoryEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> Tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    def get(self, entry_id: str) -> Optional[HistoryEntry]:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def record(
        self,
        prompt: str,
        providers: Iterable[Provider],
        tags: Iterable[str] = (),
        responses: Iterable[ResponseNode] = (),
    ) -> HistoryEntry:
        entry = HistoryEntry(
            prompt=prompt,
            providers=tuple(providers),
            tags=_clean_tags(tags),
            responses=tuple(copy.deepcopy(r) for r in responses),
        )
        self._entries.insert(0, entry)
        return entry

    def remove(self, entry_id: str) -> bool:
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                del self._entries[index]
                return True
        return False

    def set_tags(self, entry_id: str, tags: Iterable[str]) -> Optional[HistoryEntry]:
        """Replace an entry's tags in place. Unknown ids are ignored."""
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                updated = replace(entry, tags=_clean_tags(tags))
                self._entries[index] = updated
                return updated
        return None

    def search(self, query: str = "", tag: Optional[str] = None) -> List[HistoryEntry]:
        """Filter the ledger, keeping its order.

        An entry matches when the query is empty or appears (case-insensitive)
        in its prompt, one of its tags, or one of its provider names, and,
        if ``tag`` is given, the entry carries exactly that tag.
        """
        needle = query.lower()
        results = []
        for entry in self._entries:
            matches_query = (
                not needle
                or needle in entry.prompt.lower()
                or any(needle in t.lower() for t in entry.tags)
                or any(needle in p.value.lower() for p in entry.providers)
            )
            matches_tag = tag is None or tag in entry.tags
            if matches_query and matches_tag:
                results.append(entry)
        return results

    def all_tags(self) -> List[str]:
        """Unique tags across the ledger, in first-seen order."""
        seen: List[str] = []
        for entry in self._entries:
            for t in entry.tags:
                if t not in seen:
                    seen.append(t)
        return seen

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_json(self, path: Path) -> int:
        """Write the ledger to ``path`` as JSON. Returns the entry count."""
        data = [_entry_to_dict(e) for e in self._entries]
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        return len(data)

    def import_json(self, path: Path) -> int:
        """Merge entries from an export into the ledger.

        Entries whose id is already in the ledger are skipped. Each new entry
        goes in front of the first existing entry that is older than it;
        existing entries never move relative to each other.

        Raises:
            HistoryFileError: the file is unreadable, not JSON, or not a list.

        Returns:
            Number of entries added.
        """
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
            logger.warning("Cannot read history file %s: %s", path, exc)
            raise HistoryFileError(f"Cannot read history file {path}: {exc}") from exc
        if not isinstance(data, list):
            logger.warning("History file %s does not hold a list", path)
            raise HistoryFileError(f"History file {path} is not a list of entries")

        known = {e.id for e in self._entries}
        added = 0
        for raw in data:
            try:
                entry = _entry_from_dict(raw)
            except (KeyError, ValueError, TypeError, AttributeError) as exc:
                logger.warning("Skipping malformed history entry: %s", exc)
                continue
            if entry.id in known:
                continue
            self._insert_by_time(entry)
            known.add(entry.id)
            added += 1
        return added

    def save_merged(self, path: Path) -> int:
        """Write the ledger to ``path`` without losing entries already there.

        Entries in an existing export are merged with this ledger's entries
        in the written file only; the ledger itself is left unchanged.

        Returns:
            Number of entries written.
        """
        merged = HistoryLedger()
        merged._entries = list(self._entries)
        if path.exists():
            merged.import_json(path)
        return merged.export_json(path)

    def _insert_by_time(self, entry: HistoryEntry) -> None:
        for index, existing in enumerate(self._entries):
            if existing.created_at < entry.created_at:
                self._entries.insert(index, entry)
                return
        self._entries.append(entry)


def format_relative_time(timestamp: datetime, now: Optional[datetime] = None) -> str:
    """Short recency label: "Just now", "5m ago", "3h ago", or the date."""
    now = now or datetime.now(timezone.utc)
    timestamp = _as_utc(timestamp)
    seconds = (_as_utc(now) - timestamp).total_seconds()
    if seconds < 60:
        return "Just now"
    if seconds < 3600:
        return f"{int(seconds // 60)}m ago"
    if seconds < 86400:
        return f"{int(seconds // 3600)}h ago"
    return timestamp.astimezone().date().isoformat()


def _as_utc(timestamp: datetime) -> datetime:
    # Hand-edited exports may carry naive timestamps
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp


def _parse_time(value: str) -> datetime:
    return _as_utc(datetime.fromisoformat(value))


def _clean_tags(tags: Iterable[str]) -> Tuple[str, ...]:
    cleaned: List[str] = []
    for t in tags:
        t = t.strip()
        if t and t not in cleaned:
            cleaned.append(t)
    return tuple(cleaned)


def _node_to_dict(node: ResponseNode) -> dict:
    return {
        "id": node.id,
        "provider": node.provider.value,
        "prompt": node.prompt,
        "output": node.output,
        "status": node.status.value,
        "error": node.error,
        "batch_id": node.batch_id,
        "created_at": node.created_at.isoformat(),
    }


def _node_from_dict(data: dict) -> ResponseNode:
    return ResponseNode(
        id=data["id"],
        provider=Provider(data["provider"]),
        prompt=data["prompt"],
        output=data.get("output", ""),
        status=NodeStatus(data.get("status", NodeStatus.PENDING.value)),
        error=data.get("error", ""),
        batch_id=data.get("batch_id", ""),
        created_at=_parse_time(data["created_at"]),
    )


def _entry_to_dict(entry: HistoryEntry) -> dict:
    return {
        "id": entry.id,
        "created_at": entry.created_at.isoformat(),
        "prompt": entry.prompt,
        "providers": [p.value for p in entry.providers],
        "tags": list(entry.tags),
        "responses": [_node_to_dict(n) for n in entry.responses],
    }


def _entry_from_dict(data: dict) -> HistoryEntry:
    return HistoryEntry(
        id=data["id"],
        created_at=_parse_time(data["created_at"]),
        prompt=data["prompt"],
        providers=tuple(Provider(p) for p in data["providers"]),
        tags=_clean_tags(data.get("tags", [])),
        responses=tuple(_node_from_dict(n) for n in data.get("responses", [])),
    )
