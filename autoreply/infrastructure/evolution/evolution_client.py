from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import httpx

from autoreply.application.exceptions import ChatPlatformError


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code < 600


class EvolutionClient:
    """Thin async wrapper over the Evolution API message endpoints."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        timeout_ms: int = 8000,
        max_attempts: int = 2,
        retry_delay_ms: int = 350,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._max_attempts = max(1, max_attempts)
        self._retry_delay_ms = retry_delay_ms
        headers = {"content-type": "application/json"}
        if api_key:
            headers["apikey"] = api_key
        self._client = httpx.AsyncClient(timeout=timeout_ms / 1000.0, headers=headers, transport=transport)
        self._logger = logging.getLogger(__name__)

    def _url(self, path: str, instance: str) -> str:
        return f"{self._base_url}/{path}/{quote(instance, safe='')}"

    async def send_text(self, instance: str, number: str, text: str) -> dict[str, Any]:
        payload = {"number": number, "text": text}
        return await self._post_with_retry("sendText", self._url("message/sendText", instance), payload)

    async def send_media(
        self,
        instance: str,
        number: str,
        media_url: str,
        media_type: str = "image",
        caption: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"number": number, "mediatype": media_type, "media": media_url}
        if caption:
            payload["caption"] = caption
        return await self._post_with_retry("sendMedia", self._url("message/sendMedia", instance), payload)

    async def send_presence(self, instance: str, number: str, presence: str, delay_ms: int) -> dict[str, Any]:
        payload = {"number": number, "presence": presence, "delay": max(0, int(delay_ms))}
        resp = await self._client.post(self._url("chat/sendPresence", instance), json=payload)
        data = _json_or_empty(resp)
        if resp.status_code >= 400:
            raise ChatPlatformError(f"Evolution sendPresence failed ({resp.status_code})", resp.status_code)
        return data

    async def _post_with_retry(self, operation: str, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        last_error: ChatPlatformError | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                resp = await self._client.post(url, json=payload)
            except httpx.HTTPError as e:
                raise ChatPlatformError(f"Evolution {operation} failed: {e}") from e

            data = _json_or_empty(resp)
            if resp.status_code < 400:
                return data

            message = data.get("message") if isinstance(data.get("message"), str) else resp.text
            last_error = ChatPlatformError(
                f"Evolution {operation} failed ({resp.status_code}): {message}",
                resp.status_code,
            )
            self._logger.warning(
                "Evolution request failed",
                extra={"error": str(last_error), "reason": f"attempt_{attempt}"},
            )
            if attempt < self._max_attempts and _is_retryable(resp.status_code):
                await asyncio.sleep(self._retry_delay_ms / 1000.0)
                continue
            raise last_error

        raise last_error or ChatPlatformError(f"Evolution {operation} failed")

    async def aclose(self) -> None:
        await self._client.aclose()


def _json_or_empty(resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
