from __future__ import annotations

from abc import ABC, abstractmethod

from autoreply.domain.entities.catalog_item import CatalogItem


class CatalogPort(ABC):
    @abstractmethod
    async def get_items(self) -> list[CatalogItem]:
        """Current catalog snapshot. Implementations cache and fall back on their own."""
        raise NotImplementedError

    @abstractmethod
    def search(self, items: list[CatalogItem], query: str, limit: int) -> list[CatalogItem]:
        """Rank items against a free-text query, best first, at most `limit` results."""
        raise NotImplementedError
