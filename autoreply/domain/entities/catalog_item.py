from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CatalogItem:
    id: str
    name: str
    price_number: float | None = None
    currency: str | None = None
    price_text: str | None = None
    in_stock: bool | None = None
    url: str | None = None
    image: str | None = None
    category: str | None = None
    description: str | None = None
