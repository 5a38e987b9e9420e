from __future__ import annotations

import re
from typing import Any, Iterable, Mapping

from autoreply.application.utils.message_rules import normalize_text

PLACEHOLDER_RE = re.compile(r"\{\s*([a-zA-Z0-9_.-]+)\s*\}")


def text_matches_triggers(text: str, triggers: Iterable[str]) -> bool:
    """Plain substring match after normalization, so Spanish variants still hit."""
    normalized = normalize_text(text)
    if not normalized:
        return False
    for raw in triggers or ():
        trigger = normalize_text(raw)
        if trigger and trigger in normalized:
            return True
    return False


def _resolve(context: Mapping[str, Any], dotted: str) -> Any:
    value: Any = context
    for part in dotted.split("."):
        if isinstance(value, Mapping):
            value = value.get(part)
        else:
            value = getattr(value, part, None)
        if value is None:
            return None
    return value


def render_template(template: str, context: Mapping[str, Any]) -> str:
    """Replace {key} / {state.last_query} placeholders; unknown keys render empty."""

    def _substitute(match: re.Match[str]) -> str:
        value = _resolve(context, match.group(1))
        return "" if value is None else str(value)

    return PLACEHOLDER_RE.sub(_substitute, str(template or ""))
