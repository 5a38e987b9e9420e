from __future__ import annotations

from dataclasses import dataclass

from autoreply.application.ports.conversation_store import ConversationStorePort, DedupStorePort
from autoreply.application.ports.rule_store import RuleStorePort
from autoreply.domain.entities.conversation_state import ConversationState
from autoreply.domain.entities.message import ConversationKey
from autoreply.domain.entities.rule import BotMode


@dataclass(frozen=True)
class SeenRecord:
    message_id: str
    key: ConversationKey
    direction: str
    timestamp: float


@dataclass(frozen=True)
class RuleRecord:
    mode: BotMode
    notes: str | None = None


class MemoryConversationStore(ConversationStorePort):
    def __init__(self) -> None:
        self._states: dict[ConversationKey, ConversationState] = {}

    async def get_state(self, key: ConversationKey) -> ConversationState | None:
        return self._states.get(key)

    async def set_state(self, key: ConversationKey, state: ConversationState) -> None:
        self._states[key] = state

    async def list_states(self, instance: str) -> list[tuple[ConversationKey, ConversationState]]:
        return [(key, state) for key, state in self._states.items() if key.instance == instance]


class MemoryDedupStore(DedupStorePort):
    def __init__(self) -> None:
        self._seen: dict[str, SeenRecord] = {}

    async def has_seen(self, message_id: str) -> bool:
        return message_id in self._seen

    async def mark_seen(self, message_id: str, key: ConversationKey, direction: str, timestamp: float) -> None:
        self._seen.setdefault(message_id, SeenRecord(message_id, key, direction, timestamp))

    async def purge_seen(self, older_than: float) -> int:
        stale = [mid for mid, record in self._seen.items() if record.timestamp < older_than]
        for mid in stale:
            del self._seen[mid]
        return len(stale)

    def get(self, message_id: str) -> SeenRecord | None:
        return self._seen.get(message_id)


class MemoryRuleStore(RuleStorePort):
    def __init__(self) -> None:
        self._contacts: dict[str, RuleRecord] = {}
        self._conversations: dict[ConversationKey, RuleRecord] = {}

    async def get_contact_rule(self, number: str) -> BotMode | None:
        record = self._contacts.get(number)
        return record.mode if record else None

    async def set_contact_rule(self, number: str, mode: BotMode, notes: str | None = None) -> None:
        self._contacts[number] = RuleRecord(mode, notes)

    async def delete_contact_rule(self, number: str) -> None:
        self._contacts.pop(number, None)

    async def get_conversation_rule(self, key: ConversationKey) -> BotMode | None:
        record = self._conversations.get(key)
        return record.mode if record else None

    async def set_conversation_rule(self, key: ConversationKey, mode: BotMode, notes: str | None = None) -> None:
        self._conversations[key] = RuleRecord(mode, notes)

    async def delete_conversation_rule(self, key: ConversationKey) -> None:
        self._conversations.pop(key, None)

    def contact_notes(self, number: str) -> str | None:
        record = self._contacts.get(number)
        return record.notes if record else None
