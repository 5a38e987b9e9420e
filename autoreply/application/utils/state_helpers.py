from __future__ import annotations

from dataclasses import asdict, fields, replace
from typing import Any

from autoreply.domain.entities.conversation_state import MAX_LAST_HITS, ConversationState

LAST_HITS_TTL_SECONDS = 20 * 60

_STATE_FIELDS = frozenset(f.name for f in fields(ConversationState))


def apply_patch(state: ConversationState, patch: dict[str, Any]) -> ConversationState:
    """Merge a router patch into state. Unknown keys are a programming error."""
    unknown = set(patch) - _STATE_FIELDS
    if unknown:
        raise ValueError(f"Unknown conversation state fields: {sorted(unknown)}")
    values = dict(patch)
    if "last_hits" in values:
        values["last_hits"] = tuple(values["last_hits"] or ())[:MAX_LAST_HITS]
    return replace(state, **values)


def fresh_hits(state: ConversationState, now: float) -> tuple[str, ...]:
    """Option ids shown to the user, or () when there are none or they are older than 20 minutes."""
    if not state.last_hits or state.last_hits_at is None:
        return ()
    if now - state.last_hits_at >= LAST_HITS_TTL_SECONDS:
        return ()
    return state.last_hits


def state_to_dict(state: ConversationState) -> dict[str, Any]:
    data = asdict(state)
    data["last_hits"] = list(state.last_hits)
    return data


def state_from_dict(data: dict[str, Any] | None) -> ConversationState:
    data = data or {}
    known = {k: v for k, v in data.items() if k in _STATE_FIELDS}
    if "last_hits" in known:
        known["last_hits"] = tuple(str(h) for h in (known["last_hits"] or ()))[:MAX_LAST_HITS]
    return ConversationState(**known)
