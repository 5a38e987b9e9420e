from __future__ import annotations

import hashlib
import random
from dataclasses import dataclass
from typing import Sequence, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Pacing:
    """Timing knobs for debounce and reply delays, all in milliseconds."""

    debounce_min_ms: int = 2500
    debounce_max_ms: int = 4000
    burst_count: int = 3
    burst_window_ms: int = 3000
    burst_extra_min_ms: int = 2000
    burst_extra_max_ms: int = 4000
    base_min_ms: int = 800
    base_max_ms: int = 2500
    per_char_min_ms: int = 20
    per_char_max_ms: int = 60
    delay_cap_ms: int = 8000
    presence_cap_ms: int = 5000
    cooldown_ms: int = 1000
    fallback_cooldown_ms: int = 5 * 60 * 1000

    @classmethod
    def from_settings(cls, settings) -> "Pacing":
        return cls(
            debounce_min_ms=settings.BOT_HUMANIZER_MIN_MS,
            debounce_max_ms=settings.BOT_HUMANIZER_MAX_MS,
            burst_count=settings.BOT_BURST_COUNT,
            burst_window_ms=settings.BOT_BURST_WINDOW_MS,
            burst_extra_min_ms=settings.BOT_BURST_EXTRA_MIN_MS,
            burst_extra_max_ms=settings.BOT_BURST_EXTRA_MAX_MS,
            base_min_ms=settings.BOT_DELAY_BASE_MIN_MS,
            base_max_ms=settings.BOT_DELAY_BASE_MAX_MS,
            per_char_min_ms=settings.BOT_DELAY_PER_CHAR_MIN_MS,
            per_char_max_ms=settings.BOT_DELAY_PER_CHAR_MAX_MS,
            delay_cap_ms=settings.BOT_DELAY_CAP_MS,
            presence_cap_ms=settings.BOT_PRESENCE_CAP_MS,
            cooldown_ms=settings.BOT_COOLDOWN_MS,
            fallback_cooldown_ms=settings.BOT_FALLBACK_COOLDOWN_MS,
        )


def rand_ms(rng: random.Random, low: int, high: int) -> int:
    """Inclusive random integer; tolerates bounds given in the wrong order."""
    a, b = min(low, high), max(low, high)
    return rng.randint(a, b)


def debounce_delay_ms(rng: random.Random, pacing: Pacing, burst: bool) -> int:
    wait = rand_ms(rng, pacing.debounce_min_ms, pacing.debounce_max_ms)
    if burst:
        wait += rand_ms(rng, pacing.burst_extra_min_ms, pacing.burst_extra_max_ms)
    return wait


def human_delay_ms(rng: random.Random, pacing: Pacing, reply: str) -> int:
    base = rand_ms(rng, pacing.base_min_ms, pacing.base_max_ms)
    per_char = rand_ms(rng, pacing.per_char_min_ms, pacing.per_char_max_ms)
    return min(base + len(reply) * per_char, pacing.delay_cap_ms)


def hash_reply(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def pick_one(rng: random.Random, options: Sequence[T]) -> T:
    return options[rng.randrange(len(options))]


def chance(rng: random.Random, probability: float) -> bool:
    return rng.random() < probability
