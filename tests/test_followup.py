from __future__ import annotations

import asyncio

from autoreply.application.use_cases.aggregator import Aggregator
from autoreply.application.use_cases.followup import FollowUpUseCase, followup_text, is_due
from autoreply.application.use_cases.rule_gate import RuleGate
from autoreply.domain.entities.conversation_state import ConversationState
from autoreply.domain.entities.rule import BotMode
from autoreply.infrastructure.store.memory_store import MemoryConversationStore, MemoryDedupStore, MemoryRuleStore

from fakes import FIXED_PACING, INSTANCE, KEY, FailingPlatform, RecordingPlatform, VirtualScheduler, inbound

FOLLOWUP_MS = 48 * 60 * 60 * 1000
NOW = 1_700_000_000.0
QUIET_STATE = ConversationState(
    last_intent="product_results",
    last_query="ps5",
    last_bot_reply_at=NOW - 49 * 60 * 60,
)


class FollowUpFixture:
    def __init__(self, platform=None) -> None:
        self.scheduler = VirtualScheduler(NOW)
        self.store = MemoryConversationStore()
        self.dedup = MemoryDedupStore()
        self.rules = MemoryRuleStore()
        self.platform = platform or RecordingPlatform()
        self.aggregator = Aggregator(self.scheduler, FIXED_PACING)
        self.use_case = FollowUpUseCase(
            store=self.store,
            dedup=self.dedup,
            rule_gate=RuleGate(self.rules),
            aggregator=self.aggregator,
            platform=self.platform,
            scheduler=self.scheduler,
            followup_ms=FOLLOWUP_MS,
        )


def test_is_due_rules():
    assert is_due(QUIET_STATE, NOW, FOLLOWUP_MS)
    assert not is_due(ConversationState(last_intent="greeting", last_bot_reply_at=NOW - 49 * 3600), NOW, FOLLOWUP_MS)
    assert not is_due(ConversationState(last_intent="product_results", last_bot_reply_at=NOW - 3600), NOW, FOLLOWUP_MS)
    assert not is_due(ConversationState(last_intent="product_results", followup_sent=True, last_bot_reply_at=0.0), NOW, FOLLOWUP_MS)


def test_followup_sent_once():
    async def scenario():
        fx = FollowUpFixture()
        await fx.store.set_state(KEY, QUIET_STATE)

        assert await fx.use_case.run(INSTANCE) == 1
        assert fx.platform.texts == [followup_text(QUIET_STATE)]
        assert "ps5" in fx.platform.texts[0]

        state = await fx.store.get_state(KEY)
        assert state.followup_sent
        assert state.followup_sent_at == NOW
        assert fx.dedup.get("out-1").direction == "OUT"

        assert await fx.use_case.run(INSTANCE) == 0
        assert len(fx.platform.sent) == 1

    asyncio.run(scenario())


def test_followup_respects_rules_and_live_turns():
    async def scenario():
        fx = FollowUpFixture()
        await fx.store.set_state(KEY, QUIET_STATE)

        await fx.rules.set_conversation_rule(KEY, BotMode.HUMAN_ONLY)
        assert await fx.use_case.run(INSTANCE) == 0

        await fx.rules.delete_conversation_rule(KEY)
        await fx.aggregator.submit(inbound("hola de nuevo", "m1"))
        assert await fx.use_case.run(INSTANCE) == 0
        assert fx.platform.sent == []

    asyncio.run(scenario())


def test_failed_followup_is_retried_next_sweep():
    async def scenario():
        fx = FollowUpFixture(platform=FailingPlatform())
        await fx.store.set_state(KEY, QUIET_STATE)

        assert await fx.use_case.run(INSTANCE) == 0
        assert not (await fx.store.get_state(KEY)).followup_sent

    asyncio.run(scenario())
