from __future__ import annotations

import logging

from autoreply.application.ports.conversation_store import ConversationStorePort
from autoreply.application.ports.scheduler import SchedulerPort
from autoreply.application.use_cases.aggregator import AggregatedTurn, Aggregator
from autoreply.application.use_cases.intent_router import IntentRouter
from autoreply.application.use_cases.reply_scheduler import ReplyScheduler
from autoreply.application.use_cases.rule_gate import RuleGate
from autoreply.domain.entities.conversation_state import ConversationState


class ProcessTurnUseCase:
    """Drained turn -> rule gate -> intent router -> reply scheduler."""

    def __init__(
        self,
        aggregator: Aggregator,
        rule_gate: RuleGate,
        store: ConversationStorePort,
        router: IntentRouter,
        reply_scheduler: ReplyScheduler,
        scheduler: SchedulerPort,
    ) -> None:
        self._aggregator = aggregator
        self._rule_gate = rule_gate
        self._store = store
        self._router = router
        self._reply_scheduler = reply_scheduler
        self._scheduler = scheduler
        self._logger = logging.getLogger(__name__)

    async def execute(self, turn: AggregatedTurn) -> None:
        key = turn.key
        try:
            verdict = await self._rule_gate.evaluate(key)
            if not verdict.allowed:
                self._logger.info(
                    "Turn denied by rules",
                    extra={"conversation": str(key), "message_id": turn.message_id, "reason": verdict.reason},
                )
                await self._aggregator.finish_turn(key, turn.generation)
                return

            state = await self._store.get_state(key) or ConversationState()
            decision = await self._router.route(key, state, turn.text, self._scheduler.now())
            await self._reply_scheduler.schedule(turn, state, decision)
        except Exception as e:
            self._logger.exception(
                "Turn processing failed",
                extra={"conversation": str(key), "message_id": turn.message_id, "error": str(e)},
            )
            await self._aggregator.finish_turn(key, turn.generation)
