"""
In-memory collaborators shared by the tests: a virtual clock that fires timers on
demand, a recording chat platform and stores that fail on purpose.
"""

from __future__ import annotations

from autoreply.application.exceptions import ChatPlatformError
from autoreply.application.ports.catalog import CatalogPort
from autoreply.application.ports.message_platform import MessagePlatformPort
from autoreply.application.ports.rule_store import RuleStorePort
from autoreply.application.ports.scheduler import SchedulerPort, TimerCallback, TimerHandle
from autoreply.application.utils.catalog_search import search_catalog
from autoreply.application.utils.humanizer import Pacing
from autoreply.domain.entities.catalog_item import CatalogItem
from autoreply.domain.entities.message import ConversationKey, InboundEvent, InboundMessage
from autoreply.infrastructure.knowledge.catalog_data import SAMPLE_CATALOG

INSTANCE = "test-instance"
JID = "5491111111111@s.whatsapp.net"
KEY = ConversationKey(instance=INSTANCE, remote_jid=JID)

# Fixed delays so timer arithmetic in tests is exact.
FIXED_PACING = Pacing(
    debounce_min_ms=1000,
    debounce_max_ms=1000,
    burst_count=3,
    burst_window_ms=3000,
    burst_extra_min_ms=2000,
    burst_extra_max_ms=2000,
    base_min_ms=1000,
    base_max_ms=1000,
    per_char_min_ms=0,
    per_char_max_ms=0,
    delay_cap_ms=8000,
    presence_cap_ms=5000,
    cooldown_ms=1000,
    fallback_cooldown_ms=5 * 60 * 1000,
)


class VirtualTimer(TimerHandle):
    def __init__(self, due: float, seq: int, callback: TimerCallback) -> None:
        self.due = due
        self.seq = seq
        self.callback = callback
        self.fired = False
        self.cancelled = False

    @property
    def pending(self) -> bool:
        return not (self.fired or self.cancelled)

    def cancel(self) -> bool:
        if not self.pending:
            return False
        self.cancelled = True
        return True


class VirtualScheduler(SchedulerPort):
    """Clock that only moves when advance() is awaited; due timers run inline, in order."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.current = start
        self.timers: list[VirtualTimer] = []
        self._seq = 0

    def now(self) -> float:
        return self.current

    def call_later(self, delay_seconds: float, callback: TimerCallback) -> TimerHandle:
        self._seq += 1
        timer = VirtualTimer(self.current + max(0.0, delay_seconds), self._seq, callback)
        self.timers.append(timer)
        return timer

    def pending(self) -> list[VirtualTimer]:
        return [t for t in self.timers if t.pending]

    async def advance(self, seconds: float) -> None:
        target = self.current + seconds
        while True:
            due = [t for t in self.pending() if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self.current = max(self.current, timer.due)
            timer.fired = True
            await timer.callback()
        self.current = target


class RecordingPlatform(MessagePlatformPort):
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str, str | None]] = []
        self.presence: list[tuple[str, str, str, int]] = []
        self.images: list[str] = []
        self._counter = 0

    def _next_id(self) -> str:
        self._counter += 1
        return f"out-{self._counter}"

    @property
    def texts(self) -> list[str]:
        # Message text, or the caption for images, in send order.
        return [body or "" for _, _, _, body in self.sent]

    async def send_text(self, instance: str, to: str, text: str) -> str | None:
        self.sent.append(("text", instance, to, text))
        return self._next_id()

    async def send_image(self, instance: str, to: str, url: str, caption: str | None = None) -> str | None:
        self.sent.append(("image", instance, to, caption))
        self.images.append(url)
        return self._next_id()

    async def send_presence(self, instance: str, to: str, kind: str, duration_ms: int) -> bool:
        self.presence.append((instance, to, kind, duration_ms))
        return True


class FailingPlatform(RecordingPlatform):
    async def send_text(self, instance: str, to: str, text: str) -> str | None:
        raise ChatPlatformError("Evolution sendText failed (500): boom", 500)

    async def send_image(self, instance: str, to: str, url: str, caption: str | None = None) -> str | None:
        raise ChatPlatformError("Evolution sendMedia failed (500): boom", 500)


class PresenceFailingPlatform(RecordingPlatform):
    async def send_presence(self, instance: str, to: str, kind: str, duration_ms: int) -> bool:
        raise ChatPlatformError("Evolution sendPresence failed (500): boom", 500)


class FailingRuleStore(RuleStorePort):
    async def get_contact_rule(self, number):
        raise RuntimeError("rules down")

    async def set_contact_rule(self, number, mode, notes=None):
        raise RuntimeError("rules down")

    async def delete_contact_rule(self, number):
        raise RuntimeError("rules down")

    async def get_conversation_rule(self, key):
        raise RuntimeError("rules down")

    async def set_conversation_rule(self, key, mode, notes=None):
        raise RuntimeError("rules down")

    async def delete_conversation_rule(self, key):
        raise RuntimeError("rules down")


class StaticCatalog(CatalogPort):
    def __init__(self, items: list[CatalogItem] | None = None) -> None:
        self.items = list(items if items is not None else SAMPLE_CATALOG)

    async def get_items(self) -> list[CatalogItem]:
        return list(self.items)

    def search(self, items: list[CatalogItem], query: str, limit: int) -> list[CatalogItem]:
        return search_catalog(items, query, limit)


def text_event(text: str, message_id: str, from_me: bool = False, remote_jid: str = JID) -> InboundEvent:
    return InboundEvent(
        instance=INSTANCE,
        remote_jid=remote_jid,
        message_id=message_id,
        from_me=from_me,
        content={"conversation": text},
    )


def inbound(text: str, message_id: str, at: float = 0.0, key: ConversationKey = KEY) -> InboundMessage:
    return InboundMessage(key=key, message_id=message_id, raw_text=text, text=text.lower(), received_at=at)
