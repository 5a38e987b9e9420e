from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from autoreply.application.exceptions import ChatPlatformError
from autoreply.infrastructure.evolution.evolution_client import EvolutionClient
from autoreply.infrastructure.evolution.evolution_platform import EvolutionPlatform
from autoreply.infrastructure.evolution.mock_platform import MockEvolutionPlatform


def _platform(handler, max_attempts: int = 2) -> EvolutionPlatform:
    client = EvolutionClient(
        base_url="https://evo.example/",
        api_key="secret-key",
        max_attempts=max_attempts,
        retry_delay_ms=0,
        transport=httpx.MockTransport(handler),
    )
    return EvolutionPlatform(client)


def test_send_text_posts_to_instance_endpoint():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(201, json={"key": {"id": "BAE5F00D"}})

    message_id = asyncio.run(_platform(handler).send_text("tienda 1", "5491111111111", "¡Hola!"))

    assert message_id == "BAE5F00D"
    request = requests[0]
    assert str(request.url) == "https://evo.example/message/sendText/tienda%201"
    assert request.headers["apikey"] == "secret-key"
    assert json.loads(request.content) == {"number": "5491111111111", "text": "¡Hola!"}


def test_server_errors_are_retried():
    statuses = [503, 200]

    def handler(request: httpx.Request) -> httpx.Response:
        status = statuses.pop(0)
        if status == 200:
            return httpx.Response(200, json={"key": {"id": "ok-1"}})
        return httpx.Response(status, json={"message": "busy"})

    assert asyncio.run(_platform(handler).send_text("i", "549", "hola")) == "ok-1"
    assert statuses == []


def test_client_errors_are_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, json={"message": "invalid number"})

    with pytest.raises(ChatPlatformError) as exc_info:
        asyncio.run(_platform(handler, max_attempts=3).send_text("i", "000", "hola"))

    assert exc_info.value.status_code == 400
    assert "invalid number" in str(exc_info.value)
    assert len(calls) == 1


def test_retries_are_bounded():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(429)

    with pytest.raises(ChatPlatformError):
        asyncio.run(_platform(handler, max_attempts=2).send_text("i", "549", "hola"))
    assert len(calls) == 2


def test_transport_error_becomes_platform_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ChatPlatformError):
        asyncio.run(_platform(handler).send_text("i", "549", "hola"))


def test_send_image_uses_media_endpoint():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"key": {"id": "img-1"}})

    message_id = asyncio.run(_platform(handler).send_image("i", "549", "https://cdn/ps5.jpg", "Opción 1"))

    assert message_id == "img-1"
    assert requests[0].url.path == "/message/sendMedia/i"
    assert json.loads(requests[0].content) == {
        "number": "549",
        "mediatype": "image",
        "media": "https://cdn/ps5.jpg",
        "caption": "Opción 1",
    }


def test_presence_is_best_effort():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    assert asyncio.run(_platform(handler).send_presence("i", "549", "composing", 1200)) is False


def test_mock_platform_returns_ids():
    platform = MockEvolutionPlatform()
    message_id = asyncio.run(platform.send_text("i", "549", "hola"))
    assert message_id.startswith("mock-")
    assert asyncio.run(platform.send_presence("i", "549", "composing", 100)) is True
