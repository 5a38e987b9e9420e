from functools import lru_cache
import logging
import random

from autoreply.core.config import settings
from autoreply.application.ports.conversation_store import ConversationStorePort, DedupStorePort
from autoreply.application.ports.message_platform import MessagePlatformPort
from autoreply.application.ports.rule_store import RuleStorePort
from autoreply.application.use_cases.aggregator import Aggregator
from autoreply.application.use_cases.followup import FollowUpUseCase
from autoreply.application.use_cases.handle_incoming_message import HandleIncomingMessageUseCase
from autoreply.application.use_cases.ingestion_gate import IngestionGate
from autoreply.application.use_cases.intelligence_matcher import IntelligenceMatcher
from autoreply.application.use_cases.intent_router import IntentRouter
from autoreply.application.use_cases.process_turn import ProcessTurnUseCase
from autoreply.application.use_cases.reply_scheduler import ReplyScheduler, SentReplies
from autoreply.application.use_cases.rule_gate import RuleGate
from autoreply.application.utils.humanizer import Pacing
from autoreply.infrastructure.evolution.evolution_client import EvolutionClient
from autoreply.infrastructure.evolution.evolution_platform import EvolutionPlatform
from autoreply.infrastructure.evolution.mock_platform import MockEvolutionPlatform
from autoreply.infrastructure.knowledge.catalog_store import CatalogStore
from autoreply.infrastructure.knowledge.intelligence_store import JsonIntelligenceStore
from autoreply.infrastructure.scheduling.asyncio_scheduler import AsyncioScheduler
from autoreply.infrastructure.store.json_store import JsonConversationStore, JsonDedupStore, JsonRuleStore
from autoreply.infrastructure.store.memory_store import MemoryConversationStore, MemoryDedupStore, MemoryRuleStore


logger = logging.getLogger(__name__)


@lru_cache
def get_pacing() -> Pacing:
    return Pacing.from_settings(settings)


@lru_cache
def get_scheduler() -> AsyncioScheduler:
    return AsyncioScheduler()


@lru_cache
def get_rng() -> random.Random:
    return random.Random()


@lru_cache
def get_sent_replies() -> SentReplies:
    return SentReplies()


@lru_cache
def get_conversation_store() -> ConversationStorePort:
    if settings.uses_memory_store:
        return MemoryConversationStore()
    return JsonConversationStore(settings.STORE_DATA_DIR)


@lru_cache
def get_dedup_store() -> DedupStorePort:
    if settings.uses_memory_store:
        return MemoryDedupStore()
    return JsonDedupStore(settings.STORE_DATA_DIR)


@lru_cache
def get_rule_store() -> RuleStorePort:
    if settings.uses_memory_store:
        return MemoryRuleStore()
    return JsonRuleStore(settings.STORE_DATA_DIR)


@lru_cache
def get_evolution_client() -> EvolutionClient:
    return EvolutionClient(
        base_url=settings.EVOLUTION_API_URL,
        api_key=settings.EVOLUTION_API_KEY,
        timeout_ms=settings.EVOLUTION_FETCH_TIMEOUT_MS,
        max_attempts=settings.EVOLUTION_MAX_ATTEMPTS,
        retry_delay_ms=settings.EVOLUTION_RETRY_DELAY_MS,
    )


@lru_cache
def get_message_platform() -> MessagePlatformPort:
    logger.info("ENV=%s auto_reply=%s", settings.ENV, settings.AUTO_REPLY_ENABLED)

    if not settings.AUTO_REPLY_ENABLED:
        logger.info("Using MockEvolutionPlatform (AUTO_REPLY_ENABLED=false)")
        return MockEvolutionPlatform()

    if not settings.EVOLUTION_API_KEY:
        if settings.is_dev:
            logger.info("Using MockEvolutionPlatform (api key missing, ENV=dev/local)")
            return MockEvolutionPlatform()
        raise ValueError("EVOLUTION_API_KEY is required to send WhatsApp replies.")

    logger.info("Using real EvolutionPlatform")
    return EvolutionPlatform(client=get_evolution_client())


@lru_cache
def get_catalog() -> CatalogStore:
    return CatalogStore(
        source=settings.CATALOG_JSON_URL,
        clock=get_scheduler().now,
        ttl_ms=settings.CATALOG_CACHE_TTL_MS,
        timeout_ms=settings.CATALOG_FETCH_TIMEOUT_MS,
    )


@lru_cache
def get_intelligence_matcher() -> IntelligenceMatcher:
    return IntelligenceMatcher(
        store=JsonIntelligenceStore(settings.INTELLIGENCE_PATH),
        clock=get_scheduler().now,
        ttl_seconds=settings.INTELLIGENCE_CACHE_TTL_MS / 1000.0,
    )


@lru_cache
def get_aggregator() -> Aggregator:
    return Aggregator(scheduler=get_scheduler(), pacing=get_pacing(), rng=get_rng())


@lru_cache
def get_rule_gate() -> RuleGate:
    return RuleGate(
        rules=get_rule_store(),
        test_numbers=settings.test_numbers,
        private_numbers=settings.private_numbers,
    )


@lru_cache
def get_intent_router() -> IntentRouter:
    return IntentRouter(
        catalog=get_catalog(),
        rules=get_rule_store(),
        intelligence=get_intelligence_matcher(),
        rng=get_rng(),
        ack_reply_probability=settings.BOT_ACK_REPLY_PROBABILITY,
    )


@lru_cache
def get_reply_scheduler() -> ReplyScheduler:
    return ReplyScheduler(
        platform=get_message_platform(),
        aggregator=get_aggregator(),
        store=get_conversation_store(),
        dedup=get_dedup_store(),
        scheduler=get_scheduler(),
        pacing=get_pacing(),
        rng=get_rng(),
        split_replies=settings.BOT_SPLIT_REPLIES,
        split_probability=settings.BOT_SPLIT_REPLIES_PROB,
        sent_replies=get_sent_replies(),
    )


@lru_cache
def get_process_turn_use_case() -> ProcessTurnUseCase:
    use_case = ProcessTurnUseCase(
        aggregator=get_aggregator(),
        rule_gate=get_rule_gate(),
        store=get_conversation_store(),
        router=get_intent_router(),
        reply_scheduler=get_reply_scheduler(),
        scheduler=get_scheduler(),
    )
    get_aggregator().set_turn_handler(use_case.execute)
    return use_case


@lru_cache
def get_ingestion_gate() -> IngestionGate:
    return IngestionGate(
        dedup=get_dedup_store(),
        store=get_conversation_store(),
        rules=get_rule_store(),
        clock=get_scheduler().now,
        sent_replies=get_sent_replies(),
    )


def get_handle_incoming_message_use_case() -> HandleIncomingMessageUseCase:
    # Binds the turn handler before the first event reaches the aggregator.
    get_process_turn_use_case()
    return HandleIncomingMessageUseCase(gate=get_ingestion_gate(), aggregator=get_aggregator())


@lru_cache
def get_followup_use_case() -> FollowUpUseCase:
    return FollowUpUseCase(
        store=get_conversation_store(),
        dedup=get_dedup_store(),
        rule_gate=get_rule_gate(),
        aggregator=get_aggregator(),
        platform=get_message_platform(),
        scheduler=get_scheduler(),
        followup_ms=settings.BOT_FOLLOWUP_MS,
        sent_replies=get_sent_replies(),
    )
