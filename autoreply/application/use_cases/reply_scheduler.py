from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass

from autoreply.application.exceptions import ChatPlatformError
from autoreply.application.ports.conversation_store import ConversationStorePort, DedupStorePort
from autoreply.application.ports.message_platform import MessagePlatformPort
from autoreply.application.ports.scheduler import SchedulerPort
from autoreply.application.use_cases.aggregator import AggregatedTurn, Aggregator
from autoreply.application.use_cases.intent_router import CLARIFYING_VARIANTS
from autoreply.application.utils.humanizer import Pacing, chance, hash_reply, human_delay_ms, pick_one, rand_ms
from autoreply.application.utils.state_helpers import apply_patch
from autoreply.domain.entities.conversation_state import ConversationState
from autoreply.domain.entities.message import ConversationKey
from autoreply.domain.entities.reply import RouteDecision

DIRECTION_OUT = "OUT"

SCHEDULED = "scheduled"
NO_REPLY = "no_reply"
COOLDOWN = "cooldown"
REPEAT = "repeat"
SUPERSEDED = "superseded"

ECHO_WINDOW_SECONDS = 10 * 60


class SentReplies:
    """
    Texts handed to the platform in the last few minutes, per conversation.

    The platform may echo an outbound message back as a fromMe event before the
    send call has returned its id, so the ingestion gate checks this too.
    """

    def __init__(self, ttl_seconds: float = ECHO_WINDOW_SECONDS) -> None:
        self._ttl_seconds = ttl_seconds
        self._sent: dict[ConversationKey, dict[str, float]] = {}

    def remember(self, key: ConversationKey, text: str, at: float) -> None:
        for other in list(self._sent):
            self._expire(other, at)
        self._sent.setdefault(key, {})[hash_reply(text.strip())] = at

    def __len__(self) -> int:
        return len(self._sent)

    def contains(self, key: ConversationKey, text: str, now: float) -> bool:
        self._expire(key, now)
        return hash_reply(text.strip()) in self._sent.get(key, {})

    def _expire(self, key: ConversationKey, now: float) -> None:
        entries = self._sent.get(key)
        if entries is None:
            return
        for digest, at in list(entries.items()):
            if now - at > self._ttl_seconds:
                del entries[digest]
        if not entries:
            self._sent.pop(key, None)


@dataclass(frozen=True)
class PreparedReply:
    text: str
    patch: dict
    image_url: str | None
    delay_ms: int


class ReplyScheduler:
    """
    Last gate before a reply leaves: cooldown, anti-repeat and fallback escalation,
    then a humanized, cancellable send timer armed through the aggregator.

    The state patch is committed only after the platform accepted the message.
    Whatever happens, the turn is handed back to the aggregator when done.
    """

    def __init__(
        self,
        platform: MessagePlatformPort,
        aggregator: Aggregator,
        store: ConversationStorePort,
        dedup: DedupStorePort,
        scheduler: SchedulerPort,
        pacing: Pacing,
        rng: random.Random | None = None,
        split_replies: bool = False,
        split_probability: float = 0.25,
        sent_replies: SentReplies | None = None,
    ) -> None:
        self._platform = platform
        self._aggregator = aggregator
        self._store = store
        self._dedup = dedup
        self._scheduler = scheduler
        self._pacing = pacing
        self._rng = rng or random.Random()
        self._split_replies = split_replies
        self._split_probability = min(1.0, max(0.0, split_probability))
        self._sent = sent_replies if sent_replies is not None else SentReplies()
        self._logger = logging.getLogger(__name__)

    def prepare(self, state: ConversationState, decision: RouteDecision, now: float) -> PreparedReply | str:
        """Apply the pre-send gates. Returns the reply to send, or the reason it was dropped."""
        if not decision.has_reply:
            return NO_REPLY

        if state.last_bot_reply_at is not None:
            since_ms = (now - state.last_bot_reply_at) * 1000.0
            if since_ms < self._pacing.cooldown_ms:
                return COOLDOWN
        else:
            since_ms = None

        text = decision.reply or ""
        reply_hash = hash_reply(text)
        if (
            state.last_bot_reply_hash == reply_hash
            and since_ms is not None
            and since_ms < self._pacing.fallback_cooldown_ms
        ):
            return REPEAT

        is_fallback = decision.is_fallback
        if is_fallback and state.last_fallback_at is not None:
            if (now - state.last_fallback_at) * 1000.0 < self._pacing.fallback_cooldown_ms:
                options = [q for q in CLARIFYING_VARIANTS if hash_reply(q) != state.last_bot_reply_hash]
                text = pick_one(self._rng, options or list(CLARIFYING_VARIANTS))
                is_fallback = False

        patch = dict(decision.patch)
        if is_fallback:
            patch["last_fallback_at"] = now

        return PreparedReply(
            text=text,
            patch=patch,
            image_url=decision.image_url,
            delay_ms=human_delay_ms(self._rng, self._pacing, text),
        )

    async def schedule(self, turn: AggregatedTurn, state: ConversationState, decision: RouteDecision) -> str:
        now = self._scheduler.now()
        prepared = self.prepare(state, decision, now)
        if isinstance(prepared, str):
            self._logger.info(
                "Reply dropped",
                extra={
                    "conversation": str(turn.key),
                    "message_id": turn.message_id,
                    "intent": decision.intent,
                    "reason": decision.reason if prepared == NO_REPLY and decision.reason else prepared,
                },
            )
            await self._aggregator.finish_turn(turn.key, turn.generation)
            return prepared

        armed = await self._aggregator.arm_send(
            turn.key,
            turn.generation,
            prepared.delay_ms / 1000.0,
            self._send_callback(turn, state, prepared),
        )
        if not armed:
            return SUPERSEDED
        self._logger.info(
            "Reply scheduled",
            extra={
                "conversation": str(turn.key),
                "message_id": turn.message_id,
                "intent": decision.intent,
                "delay_ms": prepared.delay_ms,
            },
        )
        return SCHEDULED

    def _send_callback(self, turn: AggregatedTurn, state: ConversationState, prepared: PreparedReply):
        async def _callback() -> None:
            await self._send(turn, state, prepared)

        return _callback

    async def _send(self, turn: AggregatedTurn, state: ConversationState, prepared: PreparedReply) -> None:
        key = turn.key
        to = key.number
        delivered = False
        try:
            await self._send_presence(key.instance, to, min(prepared.delay_ms, self._pacing.presence_cap_ms))

            if prepared.image_url:
                self._sent.remember(key, prepared.text, self._scheduler.now())
                sent_ids = [await self._platform.send_image(key.instance, to, prepared.image_url, prepared.text)]
            else:
                sent_ids = await self._send_text(key, prepared.text)
            delivered = True

            sent_at = self._scheduler.now()
            await self._remember_outbound(key, sent_ids, sent_at)

            patch = dict(prepared.patch)
            patch["last_bot_reply_at"] = sent_at
            patch["last_bot_reply_hash"] = hash_reply(prepared.text)
            await self._store.set_state(key, apply_patch(state, patch))
            self._logger.info(
                "Reply sent",
                extra={"conversation": str(key), "message_id": turn.message_id},
            )
        except ChatPlatformError as e:
            self._logger.error(
                "Reply send failed",
                extra={"conversation": str(key), "message_id": turn.message_id, "error": str(e)},
            )
        except Exception as e:
            self._logger.exception(
                "Reply delivery crashed",
                extra={"conversation": str(key), "message_id": turn.message_id, "error": str(e)},
            )
        finally:
            answered = turn.message_ids if delivered else ()
            await self._aggregator.finish_turn(key, turn.generation, answered)

    async def _remember_outbound(self, key: ConversationKey, sent_ids: list[str | None], sent_at: float) -> None:
        # Lets the ingestion gate recognise the platform echo of our own message.
        for sent_id in sent_ids:
            if not sent_id:
                continue
            try:
                await self._dedup.mark_seen(sent_id, key, DIRECTION_OUT, sent_at)
            except Exception as e:
                self._logger.warning(
                    "Failed to record outbound message id",
                    extra={"conversation": str(key), "message_id": sent_id, "error": str(e)},
                )

    async def _send_presence(self, instance: str, to: str, duration_ms: int) -> None:
        try:
            await self._platform.send_presence(instance, to, "composing", duration_ms)
        except Exception as e:
            self._logger.warning("Presence signal failed", extra={"error": str(e)})

    async def _send_text(self, key: ConversationKey, text: str) -> list[str | None]:
        if self._split_replies:
            lines = [line for line in text.split("\n") if line.strip()]
            # Only split when there is a clear header and body.
            if len(lines) >= 3 and chance(self._rng, self._split_probability):
                first_id = await self._deliver_text(key, lines[0])
                await asyncio.sleep(rand_ms(self._rng, 700, 1200) / 1000.0)
                rest_id = await self._deliver_text(key, "\n".join(lines[1:]))
                return [first_id, rest_id]
        return [await self._deliver_text(key, text)]

    async def _deliver_text(self, key: ConversationKey, text: str) -> str | None:
        self._sent.remember(key, text, self._scheduler.now())
        return await self._platform.send_text(key.instance, key.number, text)
