from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable

from autoreply.application.ports.rule_store import RuleStorePort
from autoreply.application.ports.catalog import CatalogPort
from autoreply.application.use_cases.intelligence_matcher import IntelligenceMatcher
from autoreply.application.utils.catalog_search import format_item_line
from autoreply.application.utils.humanizer import chance, pick_one
from autoreply.application.utils.message_rules import (
    asks_price,
    extract_option_number,
    has_query_content,
    is_ack_only,
    is_greeting,
    is_test_mode,
    looks_like_product_query,
    wants_handoff,
)
from autoreply.application.utils.state_helpers import fresh_hits
from autoreply.application.utils.templates import render_template
from autoreply.domain.entities.catalog_item import CatalogItem
from autoreply.domain.entities.conversation_state import (
    MAX_LAST_HITS,
    STAGE_AWAITING_QUERY,
    STAGE_IDLE,
    ConversationState,
)
from autoreply.domain.entities.intelligence import DecisionRecord
from autoreply.domain.entities.message import ConversationKey
from autoreply.domain.entities.reply import RouteDecision
from autoreply.domain.entities.rule import BotMode

FAQ_CONFIDENCE = 0.99
PLAYBOOK_CONFIDENCE = 0.9
SEARCH_LIMIT = 6

TEST_MODE_REPLY = "jaja ok 😄 decime qué querés testear: búsqueda, precios o checkout"
HANDOFF_REPLY = (
    "Perfecto 🙌 Te paso con un asesor para cerrarlo rápido. "
    "Decime tu nombre y zona, y qué producto querés."
)
ACK_VARIANTS = ("Dale 👍", "Ok", "Perfecto", "Genial 🙌")
GREETING_VARIANTS = (
    "¡Buenas 😄! ¿Qué estás buscando hoy?",
    "¡Hola! Decime qué necesitás y te paso opciones.",
    "¡Hola! ¿Qué andás buscando?",
)
PRICE_REQUEST_VARIANTS = (
    "Dale. ¿De qué producto/modelo querés precio?",
    "¡Ok! Decime el modelo o marca y busco el precio.",
    "Decime el producto o modelo para chequear el precio.",
)
RESULTS_HEADER_VARIANTS = (
    "Dale. Mirá opciones 👇",
    "Te paso estas opciones 👇",
    "Genial, mirá lo que tengo 👇",
)
RESULTS_TAIL_VARIANTS = (
    "¿Querés que te pase alternativas en otro rango de precio?",
    "Si me decís presupuesto y zona, te recomiendo la mejor opción.",
    "Decime presupuesto y zona y busco lo mejor para vos.",
)
NO_MATCH_VARIANTS = (
    "No lo encontré 😕 ¿Me decís marca/modelo o para qué lo necesitás?",
    "No me aparece ese modelo. ¿Tenés presupuesto aproximado?",
    "No lo veo en el catálogo ahora. ¿Qué uso le das y rango de precio?",
)
FALLBACK_VARIANTS = (
    "Dale 🙂 ¿Qué producto estabas buscando?",
    "¿Qué necesitás ver? Si me decís marca/modelo o presupuesto, te recomiendo mejor.",
    "Decime qué estás buscando y te paso opciones y precios.",
)
CLARIFYING_VARIANTS = (
    "¿Tenés alguna marca o modelo en mente?",
    "¿Cuál es tu presupuesto aproximado?",
    "¿Para qué lo vas a usar?",
)


def detail_reply(item: CatalogItem, option: int) -> str:
    return f"Dale. Opción {option}:\n{format_item_line(item, option)}\n\n¿Querés coordinar reserva o te paso otra alternativa?"


@dataclass(frozen=True)
class RouteContext:
    key: ConversationKey
    state: ConversationState
    text: str  # aggregated raw text
    now: float
    hits: tuple[str, ...] = ()  # last_hits still within their 20 minute window


RuleHandler = Callable[[RouteContext], Awaitable["RouteDecision | None"]]


@dataclass(frozen=True)
class IntentRule:
    """
    One step of the routing chain. ``handle`` may return None to let the chain
    continue, e.g. no FAQ trigger matched or the option number is out of range.
    """

    name: str
    matches: Callable[[RouteContext], bool]
    handle: RuleHandler


class IntentRouter:
    def __init__(
        self,
        catalog: CatalogPort,
        rules: RuleStorePort,
        intelligence: IntelligenceMatcher | None = None,
        rng: random.Random | None = None,
        ack_reply_probability: float = 0.35,
    ) -> None:
        self._catalog = catalog
        self._rule_store = rules
        self._intelligence = intelligence
        self._rng = rng or random.Random()
        self._ack_reply_probability = ack_reply_probability
        self._logger = logging.getLogger(__name__)
        self._chain = self._build_chain()

    @property
    def chain(self) -> list[IntentRule]:
        return list(self._chain)

    def _build_chain(self) -> list[IntentRule]:
        has_intelligence = lambda ctx: self._intelligence is not None  # noqa: E731
        return [
            IntentRule("test_mode", lambda ctx: is_test_mode(ctx.text), self._test_mode),
            IntentRule("faq", has_intelligence, self._faq),
            IntentRule("playbook", has_intelligence, self._playbook),
            IntentRule("ack", lambda ctx: is_ack_only(ctx.text), self._ack),
            IntentRule("handoff", lambda ctx: wants_handoff(ctx.text), self._handoff),
            IntentRule("quick_followup", lambda ctx: bool(ctx.hits), self._quick_followup),
            IntentRule("search", _should_search, self._search),
            IntentRule("greeting", lambda ctx: is_greeting(ctx.text), self._greeting),
            IntentRule("price_request", lambda ctx: asks_price(ctx.text), self._price_request),
            IntentRule("fallback", lambda ctx: True, self._fallback),
        ]

    async def route(self, key: ConversationKey, state: ConversationState, text: str, now: float) -> RouteDecision:
        ctx = RouteContext(key=key, state=state, text=text, now=now, hits=fresh_hits(state, now))
        for rule in self._chain:
            if not rule.matches(ctx):
                continue
            decision = await rule.handle(ctx)
            if decision is not None:
                self._logger.info(
                    "Intent routed",
                    extra={"conversation": str(key), "intent": decision.intent, "reason": rule.name},
                )
                return decision
        # The fallback rule always answers.
        raise RuntimeError("intent chain produced no decision")

    async def _test_mode(self, ctx: RouteContext) -> RouteDecision:
        return RouteDecision(
            intent="test_mode",
            reply=TEST_MODE_REPLY,
            patch={"stage": STAGE_IDLE, "last_intent": "test_mode"},
        )

    async def _faq(self, ctx: RouteContext) -> RouteDecision | None:
        if self._intelligence is None:
            return None
        try:
            faq = await self._intelligence.match_faq(ctx.text)
            if faq is None:
                return None
            settings = await self._intelligence.settings()
        except Exception as e:
            self._logger.warning("FAQ lookup failed", extra={"conversation": str(ctx.key), "error": str(e)})
            return None
        reply = render_template(faq.answer, {"state": ctx.state, "settings": settings})
        await self._intelligence.log_decision(
            DecisionRecord(key=ctx.key, intent="faq", confidence=FAQ_CONFIDENCE, data={"faq_id": faq.id}, created_at=ctx.now)
        )
        return RouteDecision(intent="faq", reply=reply, patch={"last_intent": "faq", "last_faq_id": faq.id})

    async def _playbook(self, ctx: RouteContext) -> RouteDecision | None:
        if self._intelligence is None:
            return None
        try:
            playbook = await self._intelligence.match_playbook(ctx.text)
            if playbook is None:
                return None
            settings = await self._intelligence.settings()
        except Exception as e:
            self._logger.warning("Playbook lookup failed", extra={"conversation": str(ctx.key), "error": str(e)})
            return None
        intent = playbook.intent or "playbook"
        reply = render_template(
            playbook.template,
            {"state": ctx.state, "settings": settings, "playbook": playbook},
        )
        await self._intelligence.log_decision(
            DecisionRecord(
                key=ctx.key,
                intent=intent,
                confidence=PLAYBOOK_CONFIDENCE,
                data={"playbook_id": playbook.id},
                created_at=ctx.now,
            )
        )
        return RouteDecision(
            intent=intent,
            reply=reply,
            patch={"last_intent": intent, "last_playbook_id": playbook.id},
        )

    async def _ack(self, ctx: RouteContext) -> RouteDecision:
        if ctx.state.stage == STAGE_AWAITING_QUERY:
            return RouteDecision(intent="ack", reason="ack_while_awaiting_query")
        if not chance(self._rng, self._ack_reply_probability):
            return RouteDecision(intent="ack", reason="ack_not_answered")
        return RouteDecision(intent="ack", reply=pick_one(self._rng, ACK_VARIANTS))

    async def _handoff(self, ctx: RouteContext) -> RouteDecision:
        try:
            await self._rule_store.set_conversation_rule(ctx.key, BotMode.HUMAN_ONLY, "handoff_phrase")
        except Exception as e:
            self._logger.error(
                "Failed to set conversation rule on handoff",
                extra={"conversation": str(ctx.key), "error": str(e)},
            )
        return RouteDecision(
            intent="handoff",
            reply=HANDOFF_REPLY,
            patch={"stage": STAGE_IDLE, "last_intent": "handoff"},
        )

    async def _quick_followup(self, ctx: RouteContext) -> RouteDecision | None:
        option = extract_option_number(ctx.text)
        if option is not None and 1 <= option <= len(ctx.hits):
            selected_id = ctx.hits[option - 1]
            items = await self._load_catalog(ctx)
            item = next((i for i in items if i.id == selected_id), None)
            if item is not None:
                return RouteDecision(
                    intent="option_selected",
                    reply=detail_reply(item, option),
                    patch={"stage": STAGE_IDLE, "last_intent": "option_selected"},
                    image_url=item.image,
                )
        if option is None and asks_price(ctx.text):
            upper = min(len(ctx.hits), MAX_LAST_HITS)
            return RouteDecision(
                intent="ask_price_which",
                reply=f"Dale. ¿De cuál opción querés el precio? (1-{upper})",
                patch={"stage": STAGE_IDLE, "last_intent": "ask_price_which"},
            )
        return None

    async def _search(self, ctx: RouteContext) -> RouteDecision:
        items = await self._load_catalog(ctx)
        try:
            hits = self._catalog.search(items, ctx.text, SEARCH_LIMIT)
        except Exception as e:
            self._logger.warning("Catalog search failed", extra={"conversation": str(ctx.key), "error": str(e)})
            hits = []

        if len(hits) == 1:
            item = hits[0]
            return RouteDecision(
                intent="product_results_single",
                reply=detail_reply(item, 1),
                patch={
                    "stage": STAGE_IDLE,
                    "last_intent": "product_results_single",
                    "last_query": ctx.text,
                    "last_hits": [item.id],
                    "last_hits_at": ctx.now,
                },
                image_url=item.image,
            )

        if hits:
            lines = [pick_one(self._rng, RESULTS_HEADER_VARIANTS)]
            lines.extend(format_item_line(item, index) for index, item in enumerate(hits, start=1))
            lines.extend(["", pick_one(self._rng, RESULTS_TAIL_VARIANTS)])
            return RouteDecision(
                intent="product_results",
                reply="\n".join(lines),
                patch={
                    "stage": STAGE_IDLE,
                    "last_intent": "product_results",
                    "last_query": ctx.text,
                    "last_hits": [item.id for item in hits][:MAX_LAST_HITS],
                    "last_hits_at": ctx.now,
                },
            )

        return RouteDecision(
            intent="no_match",
            reply=pick_one(self._rng, NO_MATCH_VARIANTS),
            patch={"stage": STAGE_AWAITING_QUERY, "last_intent": "no_match", "last_query": ctx.text},
            is_fallback=True,
        )

    async def _greeting(self, ctx: RouteContext) -> RouteDecision:
        return RouteDecision(
            intent="greeting",
            reply=pick_one(self._rng, GREETING_VARIANTS),
            patch={"stage": STAGE_AWAITING_QUERY, "last_intent": "greeting"},
        )

    async def _price_request(self, ctx: RouteContext) -> RouteDecision:
        return RouteDecision(
            intent="price_request",
            reply=pick_one(self._rng, PRICE_REQUEST_VARIANTS),
            patch={"stage": STAGE_AWAITING_QUERY, "last_intent": "price_request"},
        )

    async def _fallback(self, ctx: RouteContext) -> RouteDecision:
        return RouteDecision(
            intent="fallback",
            reply=pick_one(self._rng, FALLBACK_VARIANTS),
            patch={"stage": STAGE_AWAITING_QUERY, "last_intent": "fallback"},
            is_fallback=True,
        )

    async def _load_catalog(self, ctx: RouteContext) -> list[CatalogItem]:
        try:
            return await self._catalog.get_items()
        except Exception as e:
            self._logger.warning("Catalog unavailable", extra={"conversation": str(ctx.key), "error": str(e)})
            return []


def _should_search(ctx: RouteContext) -> bool:
    if ctx.state.stage == STAGE_AWAITING_QUERY:
        return True
    if looks_like_product_query(ctx.text):
        return True
    return asks_price(ctx.text) and has_query_content(ctx.text)
