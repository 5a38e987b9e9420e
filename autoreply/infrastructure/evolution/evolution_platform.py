from __future__ import annotations

import logging
from typing import Any

from autoreply.application.ports.message_platform import MessagePlatformPort
from autoreply.infrastructure.evolution.evolution_client import EvolutionClient


def _message_id(data: dict[str, Any]) -> str | None:
    key = data.get("key")
    if isinstance(key, dict) and key.get("id"):
        return str(key["id"])
    return None


class EvolutionPlatform(MessagePlatformPort):
    def __init__(self, client: EvolutionClient) -> None:
        self._client = client
        self._logger = logging.getLogger(__name__)

    async def send_text(self, instance: str, to: str, text: str) -> str | None:
        return _message_id(await self._client.send_text(instance, to, text))

    async def send_image(self, instance: str, to: str, url: str, caption: str | None = None) -> str | None:
        return _message_id(await self._client.send_media(instance, to, url, "image", caption))

    async def send_presence(self, instance: str, to: str, kind: str, duration_ms: int) -> bool:
        try:
            await self._client.send_presence(instance, to, kind, duration_ms)
        except Exception as e:
            self._logger.warning("Presence failed", extra={"error": str(e)})
            return False
        return True
