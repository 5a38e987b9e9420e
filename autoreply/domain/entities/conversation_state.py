from __future__ import annotations

from dataclasses import dataclass

STAGE_IDLE = "idle"
STAGE_AWAITING_QUERY = "awaiting_query"

MAX_LAST_HITS = 6


@dataclass(frozen=True)
class ConversationState:
    stage: str = STAGE_IDLE  # "idle" | "awaiting_query"
    last_intent: str | None = None
    last_query: str | None = None
    last_bot_reply_at: float | None = None
    last_bot_reply_hash: str | None = None
    last_fallback_at: float | None = None
    last_hits: tuple[str, ...] = ()
    last_hits_at: float | None = None
    followup_sent: bool = False
    followup_sent_at: float | None = None
    last_faq_id: str | None = None
    last_playbook_id: str | None = None
