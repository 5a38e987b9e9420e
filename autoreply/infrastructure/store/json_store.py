from __future__ import annotations

import asyncio
import json
import logging
import re
import threading
from pathlib import Path
from typing import Any

from autoreply.application.ports.conversation_store import ConversationStorePort, DedupStorePort
from autoreply.application.ports.rule_store import RuleStorePort
from autoreply.application.utils.state_helpers import state_from_dict, state_to_dict
from autoreply.domain.entities.conversation_state import ConversationState
from autoreply.domain.entities.message import ConversationKey
from autoreply.domain.entities.rule import BotMode

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.@-]+")


def _safe_name(value: str) -> str:
    return _UNSAFE_CHARS.sub("_", value)


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        # A corrupted file is treated as empty rather than taking the bot down.
        logger.warning("Unreadable JSON file", extra={"error": f"{path}: {e}"})
        return default


def _write_text(path: Path, content: str) -> None:
    """Write atomically through a temp file and rename."""
    temp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            f.write(content)
        temp_path.replace(path)
    except Exception:
        if temp_path.exists():
            temp_path.unlink(missing_ok=True)
        raise


def _write_json(path: Path, data: Any) -> None:
    _write_text(path, json.dumps(data, indent=2, ensure_ascii=False))


class JsonConversationStore(ConversationStorePort):
    """One JSON file per conversation under data_dir/<instance>/."""

    def __init__(self, data_dir: str = "./data/conversations") -> None:
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._locks: dict[ConversationKey, threading.Lock] = {}
        self._lock_lock = threading.Lock()

    def _get_lock(self, key: ConversationKey) -> threading.Lock:
        with self._lock_lock:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]

    def _instance_dir(self, instance: str) -> Path:
        return self._data_dir / _safe_name(instance)

    def _get_file_path(self, key: ConversationKey) -> Path:
        return self._instance_dir(key.instance) / f"{_safe_name(key.remote_jid)}.json"

    def _read_state(self, key: ConversationKey) -> ConversationState | None:
        with self._get_lock(key):
            data = _read_json(self._get_file_path(key), None)
        if not isinstance(data, dict) or "state" not in data:
            return None
        return state_from_dict(data.get("state"))

    def _write_state(self, key: ConversationKey, state: ConversationState) -> None:
        path = self._get_file_path(key)
        with self._get_lock(key):
            path.parent.mkdir(parents=True, exist_ok=True)
            _write_json(
                path,
                {
                    "instance": key.instance,
                    "remote_jid": key.remote_jid,
                    "state": state_to_dict(state),
                    "version": 1,
                },
            )

    def _list_states(self, instance: str) -> list[tuple[ConversationKey, ConversationState]]:
        directory = self._instance_dir(instance)
        if not directory.exists():
            return []
        results: list[tuple[ConversationKey, ConversationState]] = []
        for file_path in sorted(directory.glob("*.json")):
            data = _read_json(file_path, None)
            if not isinstance(data, dict) or not data.get("remote_jid"):
                continue
            key = ConversationKey(instance=str(data.get("instance") or instance), remote_jid=str(data["remote_jid"]))
            results.append((key, state_from_dict(data.get("state"))))
        return results

    async def get_state(self, key: ConversationKey) -> ConversationState | None:
        return await asyncio.to_thread(self._read_state, key)

    async def set_state(self, key: ConversationKey, state: ConversationState) -> None:
        await asyncio.to_thread(self._write_state, key, state)

    async def list_states(self, instance: str) -> list[tuple[ConversationKey, ConversationState]]:
        return await asyncio.to_thread(self._list_states, instance)


class JsonDedupStore(DedupStorePort):
    """
    Seen message ids as an append-only JSON lines log.

    The log is read once into memory; marking an id appends a single line.
    Purging rewrites the log with the records that are kept.
    """

    def __init__(self, data_dir: str = "./data/conversations") -> None:
        self._path = Path(data_dir) / "_dedup.jsonl"
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._records: dict[str, dict[str, Any]] | None = None

    def _loaded(self) -> dict[str, dict[str, Any]]:
        if self._records is not None:
            return self._records
        records: dict[str, dict[str, Any]] = {}
        if self._path.exists():
            with open(self._path, "r", encoding="utf-8") as f:
                for line_no, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    try:
                        record = json.loads(line)
                    except json.JSONDecodeError as e:
                        logger.warning("Skipping unreadable dedup line", extra={"error": f"{self._path}:{line_no}: {e}"})
                        continue
                    if isinstance(record, dict) and record.get("id"):
                        records.setdefault(str(record["id"]), record)
        self._records = records
        return records

    def _has_seen(self, message_id: str) -> bool:
        with self._lock:
            return message_id in self._loaded()

    def _mark_seen(self, record: dict[str, Any]) -> None:
        with self._lock:
            records = self._loaded()
            if record["id"] in records:
                return
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
            records[record["id"]] = record

    def _purge(self, older_than: float) -> int:
        with self._lock:
            records = self._loaded()
            kept = {mid: rec for mid, rec in records.items() if float(rec.get("received_at") or 0) >= older_than}
            removed = len(records) - len(kept)
            if removed:
                lines = "".join(json.dumps(rec, ensure_ascii=False) + "\n" for rec in kept.values())
                _write_text(self._path, lines)
                self._records = kept
            return removed

    async def has_seen(self, message_id: str) -> bool:
        return await asyncio.to_thread(self._has_seen, message_id)

    async def mark_seen(self, message_id: str, key: ConversationKey, direction: str, timestamp: float) -> None:
        record = {
            "id": message_id,
            "instance": key.instance,
            "remote_jid": key.remote_jid,
            "direction": direction,
            "received_at": timestamp,
        }
        await asyncio.to_thread(self._mark_seen, record)

    async def purge_seen(self, older_than: float) -> int:
        return await asyncio.to_thread(self._purge, older_than)


class JsonRuleStore(RuleStorePort):
    """Contact and conversation rules in one JSON file."""

    def __init__(self, data_dir: str = "./data/conversations") -> None:
        self._path = Path(data_dir) / "_rules.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _load(self) -> dict[str, dict[str, Any]]:
        data = _read_json(self._path, {})
        if not isinstance(data, dict):
            data = {}
        data.setdefault("contacts", {})
        data.setdefault("conversations", {})
        return data

    @staticmethod
    def _conversation_id(key: ConversationKey) -> str:
        return str(key)

    def _get(self, section: str, item_id: str) -> BotMode | None:
        with self._lock:
            record = self._load()[section].get(item_id)
        if not isinstance(record, dict):
            return None
        return BotMode.parse(record.get("mode"))

    def _set(self, section: str, item_id: str, mode: BotMode, notes: str | None) -> None:
        with self._lock:
            data = self._load()
            data[section][item_id] = {"mode": mode.value, "notes": notes}
            _write_json(self._path, data)

    def _delete(self, section: str, item_id: str) -> None:
        with self._lock:
            data = self._load()
            if data[section].pop(item_id, None) is not None:
                _write_json(self._path, data)

    async def get_contact_rule(self, number: str) -> BotMode | None:
        return await asyncio.to_thread(self._get, "contacts", number)

    async def set_contact_rule(self, number: str, mode: BotMode, notes: str | None = None) -> None:
        await asyncio.to_thread(self._set, "contacts", number, mode, notes)

    async def delete_contact_rule(self, number: str) -> None:
        await asyncio.to_thread(self._delete, "contacts", number)

    async def get_conversation_rule(self, key: ConversationKey) -> BotMode | None:
        return await asyncio.to_thread(self._get, "conversations", self._conversation_id(key))

    async def set_conversation_rule(self, key: ConversationKey, mode: BotMode, notes: str | None = None) -> None:
        await asyncio.to_thread(self._set, "conversations", self._conversation_id(key), mode, notes)

    async def delete_conversation_rule(self, key: ConversationKey) -> None:
        await asyncio.to_thread(self._delete, "conversations", self._conversation_id(key))
