"""
End-to-end flow through the real use cases, with a virtual clock and recording platform.
"""

from __future__ import annotations

import asyncio
import random

from autoreply.application.use_cases.aggregator import Aggregator
from autoreply.application.use_cases.handle_incoming_message import HandleIncomingMessageUseCase
from autoreply.application.use_cases.ingestion_gate import Accepted, IngestionGate, Rejected
from autoreply.application.use_cases.intent_router import GREETING_VARIANTS, IntentRouter
from autoreply.application.use_cases.process_turn import ProcessTurnUseCase
from autoreply.application.use_cases.reply_scheduler import ReplyScheduler, SentReplies
from autoreply.application.use_cases.rule_gate import RuleGate
from autoreply.domain.entities.rule import BotMode
from autoreply.infrastructure.store.memory_store import MemoryConversationStore, MemoryDedupStore, MemoryRuleStore

from fakes import FIXED_PACING, KEY, RecordingPlatform, StaticCatalog, VirtualScheduler, text_event


class Engine:
    def __init__(self, test_numbers=()) -> None:
        rng = random.Random(7)
        self.scheduler = VirtualScheduler()
        self.platform = RecordingPlatform()
        self.store = MemoryConversationStore()
        self.dedup = MemoryDedupStore()
        self.rules = MemoryRuleStore()
        sent = SentReplies()
        self.aggregator = Aggregator(self.scheduler, FIXED_PACING, rng=rng)
        rule_gate = RuleGate(self.rules, test_numbers=test_numbers)
        router = IntentRouter(StaticCatalog(), self.rules, rng=rng, ack_reply_probability=0.0)
        replies = ReplyScheduler(
            platform=self.platform,
            aggregator=self.aggregator,
            store=self.store,
            dedup=self.dedup,
            scheduler=self.scheduler,
            pacing=FIXED_PACING,
            rng=rng,
            sent_replies=sent,
        )
        process_turn = ProcessTurnUseCase(self.aggregator, rule_gate, self.store, router, replies, self.scheduler)
        self.aggregator.set_turn_handler(process_turn.execute)
        gate = IngestionGate(self.dedup, self.store, self.rules, clock=self.scheduler.now, sent_replies=sent)
        self.handler = HandleIncomingMessageUseCase(gate, self.aggregator)

    async def say(self, text: str, message_id: str, from_me: bool = False):
        return await self.handler.handle(text_event(text, message_id, from_me=from_me))


def test_greeting_then_product_search():
    async def scenario():
        engine = Engine()

        assert isinstance(await engine.say("hola", "m1"), Accepted)
        await engine.scheduler.advance(1.0)  # debounce
        assert engine.platform.sent == []
        await engine.scheduler.advance(1.0)  # humanized delay
        assert len(engine.platform.texts) == 1
        assert engine.platform.texts[0] in GREETING_VARIANTS

        state = await engine.store.get_state(KEY)
        assert state.stage == "awaiting_query"
        assert state.last_intent == "greeting"

        await engine.scheduler.advance(5.0)
        await engine.say("tenes ps5", "m2")
        await engine.scheduler.advance(2.0)
        assert engine.platform.texts[1].startswith("Dale. Opción 1:\n1) PlayStation 5 Slim")

        state = await engine.store.get_state(KEY)
        assert state.last_intent == "product_results_single"
        assert state.last_hits == ("ps5",)
        assert not engine.aggregator.is_active(KEY)

    asyncio.run(scenario())


def test_redelivered_webhook_does_not_reply_twice():
    async def scenario():
        engine = Engine()
        await engine.say("hola", "m1")
        await engine.scheduler.advance(2.0)
        assert await engine.say("hola", "m1") == Rejected("duplicate")
        await engine.scheduler.advance(10.0)
        assert len(engine.platform.sent) == 1

    asyncio.run(scenario())


def test_burst_gets_a_single_reply():
    async def scenario():
        engine = Engine()
        await engine.say("hola", "m1")
        await engine.scheduler.advance(0.3)
        await engine.say("una pregunta", "m2")
        await engine.scheduler.advance(0.3)
        await engine.say("tenes monitor?", "m3")
        await engine.scheduler.advance(10.0)

        assert len(engine.platform.sent) == 1
        assert "Monitor" in engine.platform.texts[0]

    asyncio.run(scenario())


def test_typing_during_pending_reply_replaces_it():
    async def scenario():
        engine = Engine()
        await engine.say("hola", "m1")
        await engine.scheduler.advance(1.5)  # drained, reply pending
        await engine.say("busco auriculares", "m2")
        await engine.scheduler.advance(10.0)

        assert len(engine.platform.sent) == 1
        assert "Auriculares" in engine.platform.texts[0]

    asyncio.run(scenario())


def test_own_echo_is_ignored_and_operator_takes_over():
    async def scenario():
        engine = Engine()
        await engine.say("hola", "m1")
        await engine.scheduler.advance(2.0)
        greeting = engine.platform.texts[0]

        # Evolution echoes our message back with the id the send returned.
        assert await engine.say(greeting, "out-1", from_me=True) == Rejected("self_echo")
        assert await engine.rules.get_conversation_rule(KEY) is None

        assert await engine.say("Hola! Soy Caro, te atiendo yo", "op-1", from_me=True) == Rejected("operator_message")
        assert await engine.rules.get_conversation_rule(KEY) == BotMode.HUMAN_ONLY

        await engine.scheduler.advance(5.0)
        await engine.say("tenes ps5?", "m2")
        await engine.scheduler.advance(10.0)
        assert len(engine.platform.sent) == 1

    asyncio.run(scenario())


def test_test_numbers_never_get_replies():
    async def scenario():
        engine = Engine(test_numbers=[KEY.number])
        await engine.say("hola", "m1")
        await engine.scheduler.advance(10.0)
        assert engine.platform.sent == []
        assert not engine.aggregator.is_active(KEY)

    asyncio.run(scenario())


def test_silent_ack_leaves_state_untouched():
    async def scenario():
        engine = Engine()
        await engine.say("ok", "m1")
        await engine.scheduler.advance(10.0)
        assert engine.platform.sent == []
        assert await engine.store.get_state(KEY) is None

    asyncio.run(scenario())
