"""
Tests for inbound event filtering, dedup and operator takeover detection.
"""

from __future__ import annotations

import asyncio

from autoreply.application.use_cases.ingestion_gate import (
    OPERATOR_NOTE,
    Accepted,
    IngestionGate,
    Rejected,
    extract_text,
)
from autoreply.application.use_cases.reply_scheduler import SentReplies
from autoreply.application.utils.humanizer import hash_reply
from autoreply.domain.entities.conversation_state import ConversationState
from autoreply.domain.entities.message import InboundEvent
from autoreply.domain.entities.rule import BotMode
from autoreply.infrastructure.store.memory_store import MemoryConversationStore, MemoryDedupStore, MemoryRuleStore

from fakes import INSTANCE, KEY, text_event

NOW = 1_700_000_000.0


class GateFixture:
    def __init__(self) -> None:
        self.dedup = MemoryDedupStore()
        self.store = MemoryConversationStore()
        self.rules = MemoryRuleStore()
        self.sent = SentReplies()
        self.gate = IngestionGate(self.dedup, self.store, self.rules, clock=lambda: NOW, sent_replies=self.sent)

    def accept(self, event: InboundEvent):
        return asyncio.run(self.gate.accept(event))


def test_accepts_text_and_records_dedup():
    fx = GateFixture()
    result = fx.accept(text_event("¿Tenés PS5?", "m1"))

    assert isinstance(result, Accepted)
    assert result.message.key == KEY
    assert result.message.raw_text == "¿Tenés PS5?"
    assert result.message.text == "¿tenes ps5?"
    assert result.message.received_at == NOW
    assert fx.dedup.get("m1").direction == "IN"


def test_redelivery_is_rejected():
    fx = GateFixture()
    assert isinstance(fx.accept(text_event("hola", "m1")), Accepted)
    assert fx.accept(text_event("hola", "m1")) == Rejected("duplicate")


def test_missing_identifiers():
    fx = GateFixture()
    assert fx.accept(text_event("hola", "")) == Rejected("missing_jid_or_id")
    assert fx.accept(text_event("hola", "m1", remote_jid="")) == Rejected("missing_jid_or_id")


def test_groups_and_broadcasts_are_ignored():
    fx = GateFixture()
    assert fx.accept(text_event("hola", "m1", remote_jid="12036302@g.us")) == Rejected("group")
    assert fx.accept(text_event("hola", "m2", remote_jid="status@broadcast")) == Rejected("broadcast")
    assert fx.dedup.get("m1") is None


def test_empty_text_is_still_marked_seen():
    fx = GateFixture()
    event = InboundEvent(instance=INSTANCE, remote_jid=KEY.remote_jid, message_id="m1", from_me=False, content={"stickerMessage": {}})
    assert fx.accept(event) == Rejected("empty_text")
    assert fx.dedup.get("m1") is not None


def test_extract_text_payload_shapes():
    assert extract_text({"conversation": "hola"}) == "hola"
    assert extract_text({"extendedTextMessage": {"text": "link https://x"}}) == "link https://x"
    assert extract_text({"imageMessage": {"caption": "este modelo?"}}) == "este modelo?"
    assert extract_text({"videoMessage": {"caption": "mirá"}}) == "mirá"
    assert extract_text({"buttonsResponseMessage": {"selectedDisplayText": "Opción 2"}}) == "Opción 2"
    assert extract_text({"listResponseMessage": {"title": "Monitores"}}) == "Monitores"
    assert extract_text({"audioMessage": {"seconds": 4}}) == ""
    assert extract_text(None) == ""


def test_echo_of_sent_message_id():
    fx = GateFixture()
    asyncio.run(fx.dedup.mark_seen("out-1", KEY, "OUT", NOW))
    assert fx.accept(text_event("¡Hola!", "out-1", from_me=True)) == Rejected("self_echo")


def test_echo_before_send_returned():
    """The platform may echo our text before the send call returned its id."""
    fx = GateFixture()
    asyncio.run(fx.store.set_state(KEY, ConversationState(last_intent="greeting")))
    fx.sent.remember(KEY, "¡Hola! ¿Qué buscás?", NOW)

    assert fx.accept(text_event("¡Hola! ¿Qué buscás?", "out-9", from_me=True)) == Rejected("self_echo")
    assert asyncio.run(fx.rules.get_conversation_rule(KEY)) is None


def test_echo_matching_last_reply_hash():
    fx = GateFixture()
    asyncio.run(fx.store.set_state(KEY, ConversationState(last_bot_reply_hash=hash_reply("Dale 👍"))))
    assert fx.accept(text_event("Dale 👍", "out-2", from_me=True)) == Rejected("self_echo")


def test_outbound_on_unknown_conversation():
    fx = GateFixture()
    assert fx.accept(text_event("hola, soy Juan", "op-1", from_me=True)) == Rejected("from_me")
    assert asyncio.run(fx.rules.get_conversation_rule(KEY)) is None


def test_operator_message_hands_conversation_to_human():
    fx = GateFixture()
    asyncio.run(fx.store.set_state(KEY, ConversationState(last_intent="product_results")))

    result = fx.accept(text_event("Hola, te escribo yo directamente", "op-1", from_me=True))

    assert result == Rejected(OPERATOR_NOTE)
    assert asyncio.run(fx.rules.get_conversation_rule(KEY)) == BotMode.HUMAN_ONLY
