"""Core data models shared by the registry, history ledger, and correction graph."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from .errors import ValidationError


class Provider(str, Enum):
    """Supported AI backends. Declaration order is the canonical order."""

    OPENAI = "openai"
    GEMINI = "gemini"
    DEEPSEEK = "deepseek"
    QWEN = "qwen"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, value: "str | Provider") -> "Provider":
        """Resolve a provider from its name, case-insensitively."""
        if isinstance(value, Provider):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            known = ", ".join(p.value for p in cls)
            raise ValidationError(f"Unknown provider '{value}'. Choose from: {known}") from None

    @classmethod
    def parse_many(cls, values: Iterable["str | Provider"]) -> Tuple["Provider", ...]:
        """Parse several providers, dropping duplicates but keeping request order."""
        seen: List[Provider] = []
        for value in values:
            provider = cls.parse(value)
            if provider not in seen:
                seen.append(provider)
        return tuple(seen)


_DISPLAY_NAMES = {
    Provider.OPENAI: "OpenAI",
    Provider.GEMINI: "Gemini",
    Provider.DEEPSEEK: "DeepSeek",
    Provider.QWEN: "Qwen",
}


class NodeStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not NodeStatus.PENDING


class CorrectionKind(str, Enum):
    CODE_REVIEW = "code-review"
    FACT_CHECK = "fact-check"
    OPTIMIZATION = "optimization"

    @property
    def label(self) -> str:
        return self.value.replace("-", " ").title()


class LinkStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    ERROR = "error"


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ResponseNode:
    """One provider's result slot for one fan-out batch."""

    provider: Provider
    prompt: str
    output: str = ""
    status: NodeStatus = NodeStatus.PENDING
    error: str = ""
    batch_id: str = ""
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def label(self) -> str:
        return f"{self.provider.value}:{self.id[:8]}"


@dataclass(frozen=True)
class HistoryEntry:
    """Record of one past fan-out batch.

    ``responses`` holds copies of the nodes taken when the entry was
    recorded, so later registry changes never reach back into history.
    """

    prompt: str
    providers: Tuple[Provider, ...]
    responses: Tuple[ResponseNode, ...] = ()
    tags: Tuple[str, ...] = ()
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class CorrectionLink:
    """Directed request that the target response reviews the source response."""

    source_node_id: str
    source_provider: Provider
    target_node_id: str
    target_provider: Provider
    kind: CorrectionKind = CorrectionKind.CODE_REVIEW
    status: LinkStatus = LinkStatus.PENDING
    feedback: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def touches(self, node_id: str) -> bool:
        return node_id in (self.source_node_id, self.target_node_id)


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of a single credential check against a provider."""

    provider: Provider
    ok: bool
    reason: str = ""
    checked_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class DispatchOutcome:
    """Terminal result of one provider call."""

    ok: bool
    text: str = ""
    reason: str = ""

    @classmethod
    def succeeded(cls, text: str) -> "DispatchOutcome":
        return cls(ok=True, text=text)

    @classmethod
    def failed(cls, reason: str) -> "DispatchOutcome":
        return cls(ok=False, reason=reason)

    @property
    def status(self) -> NodeStatus:
        return NodeStatus.SUCCEEDED if self.ok else NodeStatus.FAILED
