from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Callable, Iterable
from urllib.parse import urljoin, urlparse

import httpx

from autoreply.application.exceptions import CatalogSourceError
from autoreply.application.ports.catalog import CatalogPort
from autoreply.application.utils.catalog_search import search_catalog
from autoreply.domain.entities.catalog_item import CatalogItem
from autoreply.infrastructure.knowledge.catalog_data import SAMPLE_CATALOG

DEFAULT_LOCAL_PATHS = ("catalog/catalog.json", "catalog.json", "data/catalog.json")

_TRUE_VALUES = {"true", "si", "sí", "1", "in_stock", "stock", "available"}
_FALSE_VALUES = {"false", "no", "0", "out_of_stock", "sin_stock", "unavailable"}


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _first_text(raw: dict[str, Any], *fields: str) -> str | None:
    for name in fields:
        value = _text(raw.get(name))
        if value:
            return value
    return None


def parse_money(value: Any) -> float | None:
    """Numbers pass through; strings like "$ 70.500,00" (es-AR) become 70500.0."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return None
    text = re.sub(r"[^\d.,-]", "", text)
    text = re.sub(r"\.(?=\d{3}(\D|$))", "", text)  # thousands separators
    text = text.replace(",", ".", 1)
    try:
        return float(text)
    except ValueError:
        return None


def parse_stock(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
    return None


def clean_description(text: str | None) -> str | None:
    if not text:
        return None
    text = re.sub(r"^\s*descripci[oó]n\s+del\s+producto\s*", "", text, flags=re.IGNORECASE)
    text = re.sub(r"#\w+", " ", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text or None


def resolve_image_url(image: str | None, product_url: str | None) -> str | None:
    if not image:
        return None
    if re.match(r"^https?://", image, flags=re.IGNORECASE):
        return image
    if product_url:
        return urljoin(product_url, image)
    return image


def name_from_url(url: str | None) -> str:
    if not url:
        return ""
    path = urlparse(url).path or url
    last = next((part for part in reversed(path.split("/")) if part), "")
    last = re.sub(r"\.(json|html?)$", "", last, flags=re.IGNORECASE)
    last = re.sub(r"[-_]+", " ", last).strip()
    return last[:1].upper() + last[1:] if last else ""


def map_catalog_item(raw: dict[str, Any]) -> CatalogItem | None:
    url = _first_text(raw, "url", "productUrl")
    name = _first_text(raw, "name", "title") or name_from_url(url)
    item_id = _first_text(raw, "id", "sku", "slug") or name or url
    if not item_id or not name:
        return None

    price_number = None
    for field_name in ("priceNumber", "priceArs", "price", "price_ars", "precio"):
        price_number = parse_money(raw.get(field_name))
        if price_number is not None:
            break

    in_stock = parse_stock(raw.get("inStock"))
    if in_stock is None:
        in_stock = parse_stock(raw.get("stock"))

    return CatalogItem(
        id=str(item_id),
        name=name,
        price_number=price_number,
        currency=_text(raw.get("currency")) or ("ARS" if price_number is not None else None),
        price_text=_first_text(raw, "priceText", "priceFormatted"),
        in_stock=in_stock,
        url=url,
        image=resolve_image_url(_first_text(raw, "image", "imageUrl"), url),
        category=_text(raw.get("category")),
        description=clean_description(_first_text(raw, "description", "descriptionRaw")),
    )


def map_catalog(rows: Iterable[Any]) -> list[CatalogItem]:
    items: list[CatalogItem] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        item = map_catalog_item(row)
        if item is not None and item.in_stock is not False:
            items.append(item)
    return items


class CatalogStore(CatalogPort):
    """
    Catalog read from CATALOG_JSON_URL (http(s) URL or file path), or from a local
    catalog.json when no source is configured.

    Results are cached for the TTL. On failure the last good snapshot is served,
    then the built-in sample catalog.
    """

    def __init__(
        self,
        source: str | None,
        clock: Callable[[], float],
        ttl_ms: int = 5 * 60 * 1000,
        timeout_ms: int = 4000,
        local_paths: Iterable[str] = DEFAULT_LOCAL_PATHS,
        transport: httpx.AsyncBaseTransport | None = None,
        fallback: list[CatalogItem] | None = None,
    ) -> None:
        self._source = source
        self._clock = clock
        self._ttl_seconds = ttl_ms / 1000.0
        self._timeout = timeout_ms / 1000.0
        self._local_paths = tuple(local_paths)
        self._transport = transport
        self._fallback = list(fallback if fallback is not None else SAMPLE_CATALOG)
        self._cached: list[CatalogItem] | None = None
        self._cached_at = 0.0
        self._logger = logging.getLogger(__name__)

    async def get_items(self) -> list[CatalogItem]:
        now = self._clock()
        if self._cached is not None and now - self._cached_at < self._ttl_seconds:
            return self._cached
        try:
            rows = await self._load_rows()
        except CatalogSourceError as e:
            self._logger.warning("Catalog source unavailable", extra={"error": str(e)})
            return self._cached if self._cached is not None else self._fallback
        if rows is None:
            return self._fallback

        self._cached = map_catalog(rows)
        self._cached_at = now
        self._logger.info("Catalog loaded", extra={"reason": f"{len(self._cached)} items"})
        return self._cached

    def search(self, items: list[CatalogItem], query: str, limit: int) -> list[CatalogItem]:
        return search_catalog(items, query, limit)

    async def _load_rows(self) -> list[Any] | None:
        if self._source and re.match(r"^https?://", self._source, flags=re.IGNORECASE):
            return await self._fetch(self._source)
        if self._source:
            return await asyncio.to_thread(self._read_file, Path(self._source))
        for candidate in self._local_paths:
            path = Path(candidate)
            if path.exists():
                return await asyncio.to_thread(self._read_file, path)
        return None

    async def _fetch(self, url: str) -> list[Any]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CatalogSourceError(f"catalog fetch failed: {e}") from e
        if not isinstance(data, list):
            raise CatalogSourceError("catalog source must return a JSON array")
        return data

    def _read_file(self, path: Path) -> list[Any]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CatalogSourceError(f"catalog file unreadable: {path}: {e}") from e
        if not isinstance(data, list):
            raise CatalogSourceError(f"catalog file must hold a JSON array: {path}")
        return data
