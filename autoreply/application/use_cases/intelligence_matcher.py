from __future__ import annotations

import logging
from typing import Any, Callable

from autoreply.application.ports.intelligence import IntelligencePort
from autoreply.application.utils.templates import text_matches_triggers
from autoreply.domain.entities.intelligence import DecisionRecord, FaqEntry, PlaybookEntry


class IntelligenceMatcher:
    """
    FAQ and playbook lookup over the intelligence store, refreshed on a short TTL.

    Panel edits show up within one TTL; between refreshes every turn is served from
    memory. A failed refresh keeps the previous snapshot.
    """

    def __init__(
        self,
        store: IntelligencePort,
        clock: Callable[[], float],
        ttl_seconds: float = 15.0,
    ) -> None:
        self._store = store
        self._clock = clock
        self._ttl_seconds = ttl_seconds
        self._loaded_at: float | None = None
        self._faqs: list[FaqEntry] = []
        self._playbooks: list[PlaybookEntry] = []
        self._settings: dict[str, Any] = {}
        self._logger = logging.getLogger(__name__)

    async def _refresh(self) -> None:
        now = self._clock()
        if self._loaded_at is not None and now - self._loaded_at < self._ttl_seconds:
            return
        try:
            faqs = await self._store.list_faqs()
            playbooks = await self._store.list_playbooks()
            settings = await self._store.get_settings()
        except Exception as e:
            self._logger.warning("Intelligence refresh failed", extra={"error": str(e)})
            if self._loaded_at is None:
                raise
            return
        self._faqs = [f for f in faqs if f.enabled]
        self._playbooks = [p for p in playbooks if p.enabled]
        self._settings = dict(settings or {})
        self._loaded_at = now

    async def match_faq(self, text: str) -> FaqEntry | None:
        await self._refresh()
        for faq in self._faqs:
            if faq.answer and text_matches_triggers(text, faq.triggers):
                return faq
        return None

    async def match_playbook(self, text: str) -> PlaybookEntry | None:
        await self._refresh()
        for playbook in self._playbooks:
            if playbook.template and text_matches_triggers(text, playbook.triggers):
                return playbook
        return None

    async def settings(self) -> dict[str, Any]:
        await self._refresh()
        return dict(self._settings)

    async def log_decision(self, record: DecisionRecord) -> None:
        # Audit trail only; a failing sink never affects the reply.
        try:
            await self._store.log_decision(record)
        except Exception as e:
            self._logger.warning(
                "Failed to log decision",
                extra={"conversation": str(record.key), "intent": record.intent, "error": str(e)},
            )
