from __future__ import annotations

from enum import Enum


class BotMode(str, Enum):
    """Per-contact or per-conversation override. Absent means the bot answers."""

    ON = "ON"
    OFF = "OFF"
    HUMAN_ONLY = "HUMAN_ONLY"

    @classmethod
    def parse(cls, value: str | None) -> "BotMode | None":
        if value is None:
            return None
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return None
