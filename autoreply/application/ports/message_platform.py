from abc import ABC, abstractmethod


class MessagePlatformPort(ABC):
    @abstractmethod
    async def send_text(self, instance: str, to: str, text: str) -> str | None:
        """Send a text message. Returns the platform message id when known."""
        raise NotImplementedError

    @abstractmethod
    async def send_image(self, instance: str, to: str, url: str, caption: str | None = None) -> str | None:
        raise NotImplementedError

    @abstractmethod
    async def send_presence(self, instance: str, to: str, kind: str, duration_ms: int) -> bool:
        """Best-effort presence signal ("composing", "paused", ...). Never raises."""
        raise NotImplementedError
