from __future__ import annotations

import logging
import uuid

from autoreply.application.ports.message_platform import MessagePlatformPort


class MockEvolutionPlatform(MessagePlatformPort):
    """Logs outbound messages instead of sending them. Used in dev and when auto reply is off."""

    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    async def send_text(self, instance: str, to: str, text: str) -> str | None:
        self._logger.info("Mock send text", extra={"conversation": f"{instance}:{to}", "text": text})
        return f"mock-{uuid.uuid4().hex}"

    async def send_image(self, instance: str, to: str, url: str, caption: str | None = None) -> str | None:
        self._logger.info("Mock send image", extra={"conversation": f"{instance}:{to}", "text": f"{url} {caption or ''}".strip()})
        return f"mock-{uuid.uuid4().hex}"

    async def send_presence(self, instance: str, to: str, kind: str, duration_ms: int) -> bool:
        self._logger.debug("Mock presence", extra={"conversation": f"{instance}:{to}", "delay_ms": duration_ms})
        return True
