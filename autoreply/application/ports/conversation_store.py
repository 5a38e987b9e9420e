from abc import ABC, abstractmethod

from autoreply.domain.entities.conversation_state import ConversationState
from autoreply.domain.entities.message import ConversationKey


class ConversationStorePort(ABC):
    @abstractmethod
    async def get_state(self, key: ConversationKey) -> ConversationState | None:
        """Return the stored state, or None when the conversation was never handled."""
        raise NotImplementedError

    @abstractmethod
    async def set_state(self, key: ConversationKey, state: ConversationState) -> None:
        raise NotImplementedError

    @abstractmethod
    async def list_states(self, instance: str) -> list[tuple[ConversationKey, ConversationState]]:
        raise NotImplementedError


class DedupStorePort(ABC):
    @abstractmethod
    async def has_seen(self, message_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def mark_seen(self, message_id: str, key: ConversationKey, direction: str, timestamp: float) -> None:
        """
        Record a message id. Write-once: marking an id that is already present is a no-op.
        direction is "IN" for inbound events and "OUT" for messages the bot sent.
        """
        raise NotImplementedError

    @abstractmethod
    async def purge_seen(self, older_than: float) -> int:
        """Delete records older than the given epoch seconds. Returns how many were removed."""
        raise NotImplementedError
