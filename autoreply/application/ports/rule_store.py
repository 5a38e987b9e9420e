from abc import ABC, abstractmethod

from autoreply.domain.entities.message import ConversationKey
from autoreply.domain.entities.rule import BotMode


class RuleStorePort(ABC):
    @abstractmethod
    async def get_contact_rule(self, number: str) -> BotMode | None:
        raise NotImplementedError

    @abstractmethod
    async def set_contact_rule(self, number: str, mode: BotMode, notes: str | None = None) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete_contact_rule(self, number: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_conversation_rule(self, key: ConversationKey) -> BotMode | None:
        raise NotImplementedError

    @abstractmethod
    async def set_conversation_rule(self, key: ConversationKey, mode: BotMode, notes: str | None = None) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete_conversation_rule(self, key: ConversationKey) -> None:
        raise NotImplementedError
