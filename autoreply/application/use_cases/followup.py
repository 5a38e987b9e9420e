from __future__ import annotations

import logging

from autoreply.application.exceptions import ChatPlatformError
from autoreply.application.ports.conversation_store import ConversationStorePort, DedupStorePort
from autoreply.application.ports.message_platform import MessagePlatformPort
from autoreply.application.ports.scheduler import SchedulerPort
from autoreply.application.use_cases.aggregator import Aggregator
from autoreply.application.use_cases.reply_scheduler import DIRECTION_OUT, SentReplies
from autoreply.application.use_cases.rule_gate import RuleGate
from autoreply.application.utils.state_helpers import apply_patch
from autoreply.domain.entities.conversation_state import ConversationState

INTERESTED_INTENTS = frozenset({"product_results", "product_results_single", "price_request", "option_selected"})


def followup_text(state: ConversationState) -> str:
    query = state.last_query or "tu consulta"
    return f"Hola 👋 ¿seguís interesado/a en {query}? ¡Me queda stock hoy!"


def is_due(state: ConversationState, now: float, followup_ms: int) -> bool:
    if state.followup_sent:
        return False
    if state.last_intent not in INTERESTED_INTENTS:
        return False
    if state.last_bot_reply_at is None:
        return False
    return (now - state.last_bot_reply_at) * 1000.0 >= followup_ms


class FollowUpUseCase:
    """One reminder for conversations that went quiet after seeing products or prices."""

    def __init__(
        self,
        store: ConversationStorePort,
        dedup: DedupStorePort,
        rule_gate: RuleGate,
        aggregator: Aggregator,
        platform: MessagePlatformPort,
        scheduler: SchedulerPort,
        followup_ms: int,
        sent_replies: SentReplies | None = None,
    ) -> None:
        self._store = store
        self._dedup = dedup
        self._rule_gate = rule_gate
        self._aggregator = aggregator
        self._platform = platform
        self._scheduler = scheduler
        self._followup_ms = followup_ms
        self._sent = sent_replies if sent_replies is not None else SentReplies()
        self._logger = logging.getLogger(__name__)

    async def run(self, instance: str) -> int:
        sent = 0
        now = self._scheduler.now()
        for key, state in await self._store.list_states(instance):
            if not is_due(state, now, self._followup_ms):
                continue
            # A live turn owns the conversation.
            if self._aggregator.is_active(key):
                continue
            verdict = await self._rule_gate.evaluate(key)
            if not verdict.allowed:
                continue

            text = followup_text(state)
            try:
                self._sent.remember(key, text, now)
                message_id = await self._platform.send_text(key.instance, key.number, text)
            except ChatPlatformError as e:
                self._logger.error("Failed to send follow-up", extra={"conversation": str(key), "error": str(e)})
                continue

            sent_at = self._scheduler.now()
            if message_id:
                await self._dedup.mark_seen(message_id, key, DIRECTION_OUT, sent_at)
            await self._store.set_state(
                key,
                apply_patch(
                    state,
                    {
                        "followup_sent": True,
                        "followup_sent_at": sent_at,
                        "last_bot_reply_at": sent_at,
                        "last_bot_reply_hash": None,
                    },
                ),
            )
            sent += 1
            self._logger.info("Follow-up sent", extra={"conversation": str(key), "intent": state.last_intent})
        return sent
