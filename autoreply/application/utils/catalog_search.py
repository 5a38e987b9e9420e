from __future__ import annotations

import re

from autoreply.application.utils.message_rules import normalize_text
from autoreply.domain.entities.catalog_item import CatalogItem

SYNONYMS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\b(play\s*station\s*5|play\s*5|ps\s*5)\b"), "ps5"),
    (re.compile(r"\b(play\s*station\s*4|play\s*4|ps\s*4)\b"), "ps4"),
    (re.compile(r"\b(auris|auri|auricular(?:es)?|headset|headsets)\b"), "auriculares"),
    (re.compile(r"\b(mando|control|joystick(?:s)?)\b"), "joystick"),
)

# Query words that never identify a product on their own.
STOPWORDS = frozenset(
    {
        "a", "al", "de", "del", "el", "la", "las", "los", "lo", "un", "una", "y", "o", "en",
        "que", "q", "hay", "tenes", "tienen", "tiene", "busco", "quiero", "necesito", "me",
        "para", "con", "por", "algun", "alguna", "precio", "cuanto", "sale", "vale", "hola",
    }
)

NAME_MATCH_SCORE = 5
TEXT_MATCH_SCORE = 2
NAME_PREFIX_SCORE = 2
TEXT_PREFIX_SCORE = 1
PREFIX_MIN_TOKEN = 4
PREFIX_LENGTH = 6


def normalize_for_search(text: str) -> str:
    normalized = normalize_text(text)
    normalized = re.sub(r"[^a-z0-9]+", " ", normalized)
    return re.sub(r"\s+", " ", normalized).strip()


def apply_synonyms(text: str) -> str:
    for pattern, replacement in SYNONYMS:
        text = pattern.sub(replacement, text)
    return text


def _haystack(item: CatalogItem) -> str:
    parts = [item.id, item.name, item.category or "", item.url or "", item.description or ""]
    return apply_synonyms(normalize_for_search(" ".join(parts)))


def score_item(item: CatalogItem, tokens: list[str], query: str) -> int:
    """
    Token overlap score. Name hits weigh more than category/description hits and a
    shared 6-char prefix of a longer token earns partial credit.
    """
    name_hay = apply_synonyms(normalize_for_search(item.name))
    hay = _haystack(item)

    score = 0
    for token in tokens:
        if token in name_hay:
            score += NAME_MATCH_SCORE
        elif token in hay:
            score += TEXT_MATCH_SCORE

        if len(token) >= PREFIX_MIN_TOKEN:
            prefix = token[: min(PREFIX_LENGTH, len(token))]
            if prefix in name_hay:
                score += NAME_PREFIX_SCORE
            elif prefix in hay:
                score += TEXT_PREFIX_SCORE

    if score and query in hay:
        score += 2
    if score and f" {query} " in f" {hay} ":
        score += 1
    return score


def search_catalog(items: list[CatalogItem], query: str, limit: int = 6) -> list[CatalogItem]:
    normalized_query = apply_synonyms(normalize_for_search(query))
    tokens = [t for t in normalized_query.split() if len(t) >= 2 and t not in STOPWORDS]
    if not tokens:
        return []
    normalized_query = " ".join(tokens)

    scored: list[tuple[int, int, CatalogItem]] = []
    for position, item in enumerate(items):
        if item.in_stock is False:
            continue
        score = score_item(item, tokens, normalized_query)
        if score > 0:
            scored.append((score, position, item))

    # Stable on catalog order for equal scores.
    scored.sort(key=lambda entry: (-entry[0], entry[1]))
    return [item for _, _, item in scored[: max(0, limit)]]


def format_price(item: CatalogItem) -> str:
    if item.price_number is not None:
        amount = item.price_number
        if float(amount).is_integer():
            formatted = f"{int(amount):,}".replace(",", ".")
        else:
            formatted = f"{amount:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
        return f"{item.currency or 'ARS'} {formatted}"
    if item.price_text:
        return item.price_text
    return ""


def format_item_line(item: CatalogItem, index: int) -> str:
    price = format_price(item)
    line = f"{index}) {item.name}"
    if price:
        line = f"{line} - {price}"
    if item.url:
        line = f"{line}\n{item.url}"
    return line
