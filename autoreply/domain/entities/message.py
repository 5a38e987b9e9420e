from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class ConversationKey:
    instance: str
    remote_jid: str

    @property
    def number(self) -> str:
        return self.remote_jid.split("@", 1)[0]

    def __str__(self) -> str:
        return f"{self.instance}:{self.remote_jid}"


@dataclass(frozen=True)
class InboundEvent:
    """One message event as delivered by the chat platform, before any filtering."""

    instance: str
    remote_jid: str
    message_id: str
    from_me: bool
    content: Mapping[str, Any] = field(default_factory=dict)  # platform "message" object
    push_name: str | None = None


@dataclass(frozen=True)
class InboundMessage:
    key: ConversationKey
    message_id: str
    raw_text: str  # diacritics preserved, used for display and hashing
    text: str  # normalized, used for matching
    received_at: float
