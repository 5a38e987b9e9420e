from __future__ import annotations

import asyncio
import json
import threading
import time
from pathlib import Path
from typing import Any

from autoreply.application.ports.intelligence import IntelligencePort
from autoreply.domain.entities.intelligence import DecisionRecord, FaqEntry, PlaybookEntry


def _triggers(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return ()
    return tuple(str(t) for t in value if isinstance(t, str) and t.strip())


def parse_faq(raw: dict[str, Any], index: int) -> FaqEntry | None:
    answer = raw.get("answer")
    if not isinstance(answer, str) or not answer.strip():
        return None
    return FaqEntry(
        id=str(raw.get("id") or f"faq-{index}"),
        triggers=_triggers(raw.get("triggers")),
        answer=answer,
        title=raw.get("title"),
        enabled=bool(raw.get("enabled", True)),
    )


def parse_playbook(raw: dict[str, Any], index: int) -> PlaybookEntry | None:
    template = raw.get("template")
    if not isinstance(template, str) or not template.strip():
        return None
    return PlaybookEntry(
        id=str(raw.get("id") or f"playbook-{index}"),
        intent=str(raw.get("intent") or "playbook"),
        triggers=_triggers(raw.get("triggers")),
        template=template,
        enabled=bool(raw.get("enabled", True)),
    )


def decision_to_dict(record: DecisionRecord) -> dict[str, Any]:
    return {
        "instance": record.key.instance,
        "remote_jid": record.key.remote_jid,
        "intent": record.intent,
        "confidence": record.confidence,
        "data": record.data,
        "created_at": record.created_at if record.created_at is not None else time.time(),
    }


class MemoryIntelligenceStore(IntelligencePort):
    def __init__(
        self,
        faqs: list[FaqEntry] | None = None,
        playbooks: list[PlaybookEntry] | None = None,
        settings: dict[str, Any] | None = None,
    ) -> None:
        self.faqs = list(faqs or [])
        self.playbooks = list(playbooks or [])
        self.settings = dict(settings or {})
        self.decisions: list[DecisionRecord] = []

    async def list_faqs(self) -> list[FaqEntry]:
        return list(self.faqs)

    async def list_playbooks(self) -> list[PlaybookEntry]:
        return list(self.playbooks)

    async def get_settings(self) -> dict[str, Any]:
        return dict(self.settings)

    async def log_decision(self, record: DecisionRecord) -> None:
        self.decisions.append(record)


class JsonIntelligenceStore(IntelligencePort):
    """
    FAQ, playbooks and settings edited from the panel, stored as one JSON document:

        {"settings": {...}, "faqs": [...], "playbooks": [...]}

    Decisions are appended to decisions.jsonl in the same directory.
    """

    def __init__(self, path: str = "./data/intelligence.json") -> None:
        self._path = Path(path)
        self._decisions_path = self._path.parent / "decisions.jsonl"
        self._lock = threading.Lock()

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        with open(self._path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}

    async def list_faqs(self) -> list[FaqEntry]:
        rows = (await asyncio.to_thread(self._load)).get("faqs") or []
        faqs = [parse_faq(row, i) for i, row in enumerate(rows) if isinstance(row, dict)]
        return [f for f in faqs if f is not None]

    async def list_playbooks(self) -> list[PlaybookEntry]:
        rows = (await asyncio.to_thread(self._load)).get("playbooks") or []
        playbooks = [parse_playbook(row, i) for i, row in enumerate(rows) if isinstance(row, dict)]
        return [p for p in playbooks if p is not None]

    async def get_settings(self) -> dict[str, Any]:
        settings = (await asyncio.to_thread(self._load)).get("settings")
        return settings if isinstance(settings, dict) else {}

    def _append_decision(self, line: str) -> None:
        with self._lock:
            self._decisions_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._decisions_path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    async def log_decision(self, record: DecisionRecord) -> None:
        line = json.dumps(decision_to_dict(record), ensure_ascii=False)
        await asyncio.to_thread(self._append_decision, line)
