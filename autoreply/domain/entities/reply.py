from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class RouteDecision:
    """Outcome of the intent router for one aggregated turn.

    ``reply`` is None when the turn ends without sending anything; ``reason`` then
    says why. ``patch`` holds ConversationState field updates committed only after
    the reply actually leaves.
    """

    intent: str
    reply: str | None = None
    patch: dict[str, Any] = field(default_factory=dict)
    image_url: str | None = None
    is_fallback: bool = False
    reason: str | None = None

    @property
    def has_reply(self) -> bool:
        return bool(self.reply and self.reply.strip())
