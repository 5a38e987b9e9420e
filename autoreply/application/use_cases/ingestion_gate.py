from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Union

from autoreply.application.ports.conversation_store import ConversationStorePort, DedupStorePort
from autoreply.application.ports.rule_store import RuleStorePort
from autoreply.application.use_cases.reply_scheduler import SentReplies
from autoreply.application.utils.humanizer import hash_reply
from autoreply.application.utils.message_rules import normalize_text
from autoreply.domain.entities.conversation_state import ConversationState
from autoreply.domain.entities.message import ConversationKey, InboundEvent, InboundMessage
from autoreply.domain.entities.rule import BotMode

DIRECTION_IN = "IN"
OPERATOR_NOTE = "operator_message"


@dataclass(frozen=True)
class Accepted:
    message: InboundMessage


@dataclass(frozen=True)
class Rejected:
    reason: str


IngestionResult = Union[Accepted, Rejected]


def extract_text(content: Mapping[str, Any] | None) -> str:
    """Text of a platform message: plain, captioned media, or a button/list selection."""
    content = content or {}

    def _str(value: Any) -> str | None:
        return value if isinstance(value, str) else None

    def _nested(name: str, field: str) -> str | None:
        inner = content.get(name)
        if isinstance(inner, Mapping):
            return _str(inner.get(field))
        return None

    candidates = (
        _str(content.get("conversation")),
        _nested("extendedTextMessage", "text"),
        _nested("imageMessage", "caption"),
        _nested("videoMessage", "caption"),
        _nested("buttonsResponseMessage", "selectedDisplayText"),
        _nested("listResponseMessage", "title"),
    )
    for text in candidates:
        if text is not None:
            return text
    return ""


def is_group(remote_jid: str) -> bool:
    return remote_jid.endswith("@g.us")


def is_broadcast(remote_jid: str) -> bool:
    return remote_jid == "status@broadcast" or remote_jid.endswith("@broadcast")


class IngestionGate:
    def __init__(
        self,
        dedup: DedupStorePort,
        store: ConversationStorePort,
        rules: RuleStorePort,
        clock: Callable[[], float],
        sent_replies: SentReplies | None = None,
    ) -> None:
        self._dedup = dedup
        self._store = store
        self._rules = rules
        self._clock = clock
        self._sent_replies = sent_replies
        self._logger = logging.getLogger(__name__)

    async def accept(self, event: InboundEvent) -> IngestionResult:
        if not event.remote_jid or not event.message_id:
            return Rejected("missing_jid_or_id")
        if is_group(event.remote_jid):
            return Rejected("group")
        if is_broadcast(event.remote_jid):
            return Rejected("broadcast")

        key = ConversationKey(instance=event.instance, remote_jid=event.remote_jid)

        if event.from_me:
            return await self._reject_outbound(key, event)

        if await self._dedup.has_seen(event.message_id):
            self._logger.info(
                "Duplicate message ignored",
                extra={"conversation": str(key), "message_id": event.message_id},
            )
            return Rejected("duplicate")

        now = self._clock()
        # Recorded before any processing so a redelivery never re-runs a turn.
        await self._dedup.mark_seen(event.message_id, key, DIRECTION_IN, now)

        raw_text = extract_text(event.content)
        text = normalize_text(raw_text)
        if not text:
            return Rejected("empty_text")

        return Accepted(
            InboundMessage(
                key=key,
                message_id=event.message_id,
                raw_text=raw_text,
                text=text,
                received_at=now,
            )
        )

    async def _reject_outbound(self, key: ConversationKey, event: InboundEvent) -> Rejected:
        if await self._dedup.has_seen(event.message_id):
            return Rejected("self_echo")

        try:
            state = await self._store.get_state(key)
        except Exception as e:
            self._logger.warning(
                "State lookup failed for outbound event",
                extra={"conversation": str(key), "message_id": event.message_id, "error": str(e)},
            )
            state = None

        raw_text = extract_text(event.content)
        if self._is_own_text(key, state, raw_text):
            return Rejected("self_echo")
        if state is None:
            return Rejected("from_me")

        # An operator typed into a conversation the assistant was handling.
        try:
            await self._rules.set_conversation_rule(key, BotMode.HUMAN_ONLY, OPERATOR_NOTE)
        except Exception as e:
            self._logger.error(
                "Failed to set conversation rule on operator message",
                extra={"conversation": str(key), "message_id": event.message_id, "error": str(e)},
            )
        else:
            self._logger.info(
                "Operator took over conversation",
                extra={"conversation": str(key), "message_id": event.message_id},
            )
        return Rejected("operator_message")

    def _is_own_text(self, key: ConversationKey, state: ConversationState | None, raw_text: str) -> bool:
        if not raw_text.strip():
            return False
        if self._sent_replies is not None and self._sent_replies.contains(key, raw_text, self._clock()):
            return True
        if state is None or not state.last_bot_reply_hash:
            return False
        return state.last_bot_reply_hash in (hash_reply(raw_text), hash_reply(raw_text.strip()))
