from __future__ import annotations

import asyncio
import json
import tempfile
from pathlib import Path

import httpx

from autoreply.infrastructure.knowledge.catalog_data import SAMPLE_CATALOG
from autoreply.infrastructure.knowledge.catalog_store import (
    CatalogStore,
    clean_description,
    map_catalog,
    map_catalog_item,
    name_from_url,
    parse_money,
    parse_stock,
)

CATALOG_URL = "https://shop.example/catalog.json"

ROWS = [
    {
        "sku": "PS5-SLIM",
        "title": "PlayStation 5 Slim",
        "precio": "$ 999.999,00",
        "url": "https://shop.example/productos/ps5-slim/",
        "imageUrl": "/img/ps5.jpg",
        "category": "consolas",
        "description": "Descripción del producto Consola nueva #gamer #ps5",
    },
    {"id": "xbox", "name": "Xbox Series X", "priceNumber": 899999, "inStock": "sin_stock"},
    {"url": "https://shop.example/productos/silla-gamer-pro"},
    "not-a-row",
]


class Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_parse_money_handles_es_ar_format():
    assert parse_money("$ 70.500,00") == 70500.0
    assert parse_money("1.234.567") == 1234567.0
    assert parse_money(1500) == 1500.0
    assert parse_money("consultar") is None
    assert parse_money(True) is None


def test_parse_stock_values():
    assert parse_stock("si") is True
    assert parse_stock("out_of_stock") is False
    assert parse_stock(0) is False
    assert parse_stock("quizas") is None


def test_row_mapping():
    item = map_catalog_item(ROWS[0])
    assert item.id == "PS5-SLIM"
    assert item.name == "PlayStation 5 Slim"
    assert item.price_number == 999999.0
    assert item.currency == "ARS"
    assert item.image == "https://shop.example/img/ps5.jpg"
    assert item.description == "Consola nueva"

    assert name_from_url("https://shop.example/productos/silla-gamer-pro") == "Silla gamer pro"
    assert clean_description("  ") is None


def test_out_of_stock_and_invalid_rows_are_dropped():
    assert [item.id for item in map_catalog(ROWS)] == ["PS5-SLIM", "Silla gamer pro"]


def test_http_catalog_is_cached_for_ttl():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(200, json=ROWS)

    async def scenario():
        clock = Clock()
        store = CatalogStore(CATALOG_URL, clock, ttl_ms=60_000, transport=httpx.MockTransport(handler))

        items = await store.get_items()
        assert [item.name for item in items] == ["PlayStation 5 Slim", "Silla gamer pro"]

        clock.now = 30.0
        await store.get_items()
        assert len(calls) == 1

        clock.now = 61.0
        await store.get_items()
        assert len(calls) == 2

    asyncio.run(scenario())


def test_failed_refresh_serves_last_snapshot():
    responses = [httpx.Response(200, json=ROWS), httpx.Response(503, text="down")]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    async def scenario():
        clock = Clock()
        store = CatalogStore(CATALOG_URL, clock, ttl_ms=1000, transport=httpx.MockTransport(handler))
        first = await store.get_items()
        clock.now = 5.0
        assert await store.get_items() == first

    asyncio.run(scenario())


def test_unreachable_source_falls_back_to_sample():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"items": []})

    async def scenario():
        store = CatalogStore(CATALOG_URL, Clock(), transport=httpx.MockTransport(handler))
        assert await store.get_items() == SAMPLE_CATALOG

    asyncio.run(scenario())


def test_local_file_source():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "catalog.json"
        path.write_text(json.dumps(ROWS[:2]), encoding="utf-8")
        store = CatalogStore(None, Clock(), local_paths=[str(path)])
        items = asyncio.run(store.get_items())
        assert [item.id for item in items] == ["PS5-SLIM"]


def test_no_source_uses_sample():
    store = CatalogStore(None, Clock(), local_paths=[])
    assert asyncio.run(store.get_items()) == SAMPLE_CATALOG


def test_search_delegates_to_ranking():
    store = CatalogStore(None, Clock(), local_paths=[])
    assert [item.id for item in store.search(SAMPLE_CATALOG, "xbox", 6)] == ["xbox"]
