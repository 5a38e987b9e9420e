from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from autoreply.application.ports.scheduler import SchedulerPort, TimerCallback, TimerHandle
from autoreply.application.utils.humanizer import Pacing, debounce_delay_ms
from autoreply.domain.entities.message import ConversationKey, InboundMessage

MAX_BUFFERED = 6


@dataclass(frozen=True)
class AggregatedTurn:
    key: ConversationKey
    text: str  # buffered raw texts, newline-joined, oldest first
    message_id: str  # most recent message id in the burst
    message_ids: tuple[str, ...]
    generation: int


@dataclass
class AggregationEntry:
    key: ConversationKey
    first_at: float
    last_at: float
    texts: list[str] = field(default_factory=list)
    message_ids: list[str] = field(default_factory=list)
    count: int = 0
    generation: int = 0
    draining: bool = False
    redrain: bool = False
    debounce_timer: TimerHandle | None = None
    send_timer: TimerHandle | None = None


TurnHandler = Callable[[AggregatedTurn], Awaitable[None]]


class Aggregator:
    """
    Per-conversation debounce. Events for one key are buffered until the key has
    been quiet for a randomized window, then handed over as a single turn.

    Lifecycle per key: no entry (idle) -> buffering (debounce timer armed) ->
    draining (turn handed to the handler, maybe a send timer armed) -> entry removed
    by finish_turn(). At most one turn per key is draining at any time.

    Every event bumps the entry generation. A turn that finishes or tries to arm a
    send with an older generation has been superseded by newer input: the entry is
    kept so the newer input drains in the next cycle.
    """

    def __init__(
        self,
        scheduler: SchedulerPort,
        pacing: Pacing,
        rng: random.Random | None = None,
        entries: dict[ConversationKey, AggregationEntry] | None = None,
        turn_handler: TurnHandler | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._pacing = pacing
        self._rng = rng or random.Random()
        self._entries = entries if entries is not None else {}
        self._locks: dict[ConversationKey, asyncio.Lock] = {}
        self._turn_handler = turn_handler
        self._logger = logging.getLogger(__name__)

    def set_turn_handler(self, handler: TurnHandler) -> None:
        self._turn_handler = handler

    def get(self, key: ConversationKey) -> AggregationEntry | None:
        return self._entries.get(key)

    def is_active(self, key: ConversationKey) -> bool:
        return key in self._entries

    def active_keys(self) -> list[ConversationKey]:
        return list(self._entries)

    def _lock_for(self, key: ConversationKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _forget_lock(self, key: ConversationKey) -> None:
        lock = self._locks.get(key)
        if key not in self._entries and lock is not None and not lock.locked():
            self._locks.pop(key, None)

    async def submit(self, message: InboundMessage) -> None:
        key = message.key
        async with self._lock_for(key):
            now = self._scheduler.now()
            entry = self._entries.get(key)
            if entry is None:
                entry = AggregationEntry(key=key, first_at=now, last_at=now)
                self._entries[key] = entry
            else:
                if entry.debounce_timer is not None:
                    entry.debounce_timer.cancel()
                    entry.debounce_timer = None
                if entry.send_timer is not None:
                    # The user kept typing while a reply was pending.
                    if entry.send_timer.cancel():
                        entry.draining = False
                        self._logger.info(
                            "Pending reply cancelled by new input",
                            extra={"conversation": str(key), "message_id": message.message_id},
                        )
                    entry.send_timer = None
                entry.generation += 1
                # A fresh debounce cycle replaces any drain queued behind the in-flight turn.
                entry.redrain = False

            entry.texts.append(message.raw_text)
            entry.message_ids.append(message.message_id)
            entry.texts = entry.texts[-MAX_BUFFERED:]
            entry.message_ids = entry.message_ids[-MAX_BUFFERED:]
            entry.count += 1
            entry.last_at = now

            burst = self._is_burst(entry)
            wait_ms = debounce_delay_ms(self._rng, self._pacing, burst)
            entry.debounce_timer = self._scheduler.call_later(wait_ms / 1000.0, self._drain_callback(key))
            self._logger.debug(
                "Message buffered",
                extra={
                    "conversation": str(key),
                    "message_id": message.message_id,
                    "delay_ms": wait_ms,
                    "reason": "burst" if burst else None,
                },
            )

    def _is_burst(self, entry: AggregationEntry) -> bool:
        span_ms = (entry.last_at - entry.first_at) * 1000.0
        return entry.count >= self._pacing.burst_count and span_ms <= self._pacing.burst_window_ms

    def _drain_callback(self, key: ConversationKey) -> TimerCallback:
        async def _callback() -> None:
            await self._drain(key)

        return _callback

    async def _drain(self, key: ConversationKey) -> None:
        async with self._lock_for(key):
            entry = self._entries.get(key)
            if entry is None:
                return
            entry.debounce_timer = None
            if entry.draining:
                # A turn for this key is still in flight; run again once it finishes.
                entry.redrain = True
                return
            entry.draining = True
            entry.redrain = False
            turn = AggregatedTurn(
                key=key,
                text="\n".join(entry.texts),
                message_id=entry.message_ids[-1],
                message_ids=tuple(entry.message_ids),
                generation=entry.generation,
            )

        self._logger.info(
            "Turn drained",
            extra={"conversation": str(key), "message_id": turn.message_id},
        )
        if self._turn_handler is None:
            self._logger.error("No turn handler bound; dropping turn", extra={"conversation": str(key)})
            await self.finish_turn(key, turn.generation)
            return
        try:
            await self._turn_handler(turn)
        except Exception as e:
            self._logger.exception(
                "Turn handler failed",
                extra={"conversation": str(key), "message_id": turn.message_id, "error": str(e)},
            )
            await self.finish_turn(key, turn.generation)

    async def arm_send(
        self,
        key: ConversationKey,
        generation: int,
        delay_seconds: float,
        callback: TimerCallback,
    ) -> bool:
        """
        Arm the send timer for the draining turn. Returns False, and ends the turn,
        when newer input already superseded it.
        """
        async with self._lock_for(key):
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.generation != generation:
                self._release(entry)
                self._logger.info(
                    "Reply superseded before scheduling",
                    extra={"conversation": str(key), "reason": "new_input"},
                )
                return False
            entry.send_timer = self._scheduler.call_later(delay_seconds, callback)
            return True

    async def finish_turn(
        self,
        key: ConversationKey,
        generation: int,
        answered_ids: tuple[str, ...] = (),
    ) -> None:
        """
        End the draining turn; tears the entry down unless newer input arrived meanwhile.

        answered_ids are the messages the turn actually replied to. When newer input
        is pending they are dropped from the buffer so the next turn only carries
        what is still unanswered.
        """
        async with self._lock_for(key):
            entry = self._entries.get(key)
            if entry is None:
                return
            if entry.generation != generation:
                entry.send_timer = None
                if answered_ids:
                    self._drop_answered(entry, set(answered_ids))
                self._release(entry)
                return
            if entry.debounce_timer is not None:
                entry.debounce_timer.cancel()
            if entry.send_timer is not None:
                entry.send_timer.cancel()
            del self._entries[key]
        self._forget_lock(key)

    @staticmethod
    def _drop_answered(entry: AggregationEntry, answered: set[str]) -> None:
        kept = [(mid, text) for mid, text in zip(entry.message_ids, entry.texts) if mid not in answered]
        entry.message_ids = [mid for mid, _ in kept]
        entry.texts = [text for _, text in kept]

    def _release(self, entry: AggregationEntry) -> None:
        entry.draining = False
        if entry.redrain:
            entry.redrain = False
            if entry.debounce_timer is None:
                entry.debounce_timer = self._scheduler.call_later(0, self._drain_callback(entry.key))

    async def discard_all(self) -> None:
        for key in list(self._entries):
            async with self._lock_for(key):
                entry = self._entries.pop(key, None)
                if entry is None:
                    continue
                if entry.debounce_timer is not None:
                    entry.debounce_timer.cancel()
                if entry.send_timer is not None:
                    entry.send_timer.cancel()
            self._forget_lock(key)
