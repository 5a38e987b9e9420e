from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from autoreply.domain.entities.intelligence import DecisionRecord, FaqEntry, PlaybookEntry


class IntelligencePort(ABC):
    @abstractmethod
    async def list_faqs(self) -> list[FaqEntry]:
        """Enabled FAQ rows, most recent first."""
        raise NotImplementedError

    @abstractmethod
    async def list_playbooks(self) -> list[PlaybookEntry]:
        """Enabled playbook rows, most recent first."""
        raise NotImplementedError

    @abstractmethod
    async def get_settings(self) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    async def log_decision(self, record: DecisionRecord) -> None:
        raise NotImplementedError
