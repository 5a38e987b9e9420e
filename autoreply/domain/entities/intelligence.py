from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from autoreply.domain.entities.message import ConversationKey


@dataclass(frozen=True)
class FaqEntry:
    id: str
    triggers: tuple[str, ...]
    answer: str
    title: str | None = None
    enabled: bool = True


@dataclass(frozen=True)
class PlaybookEntry:
    id: str
    intent: str
    triggers: tuple[str, ...]
    template: str
    enabled: bool = True


@dataclass(frozen=True)
class DecisionRecord:
    key: ConversationKey
    intent: str
    confidence: float
    data: dict[str, Any] = field(default_factory=dict)
    created_at: float | None = None
