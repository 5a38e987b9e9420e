from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from autoreply.domain.entities.message import InboundEvent

UPSERT_EVENTS = {"messages.upsert", "messages_upsert", "messagesupsert"}


class EvolutionWebhookDTO(BaseModel):
    event: str | None = None
    instance: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    def is_messages_upsert(self) -> bool:
        return (self.event or "").strip().lower() in UPSERT_EVENTS

    def to_event(self, default_instance: str) -> InboundEvent:
        data = self.data or {}
        key = data.get("key") or {}
        message = data.get("message")
        return InboundEvent(
            instance=str(self.instance or default_instance),
            remote_jid=str(key.get("remoteJid") or ""),
            message_id=str(key.get("id") or ""),
            from_me=bool(key.get("fromMe")),
            content=message if isinstance(message, dict) else {},
            push_name=data.get("pushName"),
        )
