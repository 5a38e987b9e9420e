from __future__ import annotations

import tempfile

import pytest

from autoreply.core.config import settings
from autoreply.infrastructure.store.json_store import JsonConversationStore, JsonDedupStore, JsonRuleStore
from autoreply.infrastructure.store.memory_store import MemoryConversationStore, MemoryDedupStore, MemoryRuleStore
from autoreply.wiring.dependencies import get_conversation_store, get_dedup_store, get_rule_store

STORE_GETTERS = (get_conversation_store, get_dedup_store, get_rule_store)


@pytest.fixture
def fresh_stores():
    for getter in STORE_GETTERS:
        getter.cache_clear()
    yield
    for getter in STORE_GETTERS:
        getter.cache_clear()


@pytest.mark.parametrize("env", ["production", "staging", "dev"])
def test_stores_are_durable_in_every_environment(fresh_stores, monkeypatch, env):
    """State, dedup ids and HUMAN_ONLY overrides must survive a restart wherever the bot runs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        monkeypatch.setattr(settings, "ENV", env)
        monkeypatch.setattr(settings, "STORE_DATA_DIR", tmpdir)

        assert isinstance(get_conversation_store(), JsonConversationStore)
        assert isinstance(get_dedup_store(), JsonDedupStore)
        assert isinstance(get_rule_store(), JsonRuleStore)


def test_memory_backend_is_opt_in(fresh_stores, monkeypatch):
    monkeypatch.setattr(settings, "ENV", "production")
    monkeypatch.setattr(settings, "STORE_BACKEND", "memory")

    assert isinstance(get_conversation_store(), MemoryConversationStore)
    assert isinstance(get_dedup_store(), MemoryDedupStore)
    assert isinstance(get_rule_store(), MemoryRuleStore)
