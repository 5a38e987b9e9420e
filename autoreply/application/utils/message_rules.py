from __future__ import annotations

import re
import unicodedata

TEST_MODE_RE = re.compile(
    r"(probando|testeando|\btest\b|configurando|\bchatbot\b|no\s+le\s+des\s+bola|no\s+respondas|no\s+contestes)"
)

ACK_RE = re.compile(
    r"^(ok|oki|okey|okay|dale|de\s+una|deuna|(?:ja){2,}|jaja+|aja|ah+|mmm+|joya|genial|buenisimo|listo|"
    r"gracias|grx|sorry|sry|👍|👌|🙏|🙌)$"
)
ACK_MAX_LENGTH = 16

HANDOFF_RE = re.compile(
    r"(comprar|reservar|\bsenar?\b|pagar|quiero\s+ya|transferencia|deposit(?:o|ar|e)\b)"
)

PRICE_RE = re.compile(r"\b(precio|precios|cuanto|cuantos|vale|valor|sale|salen|cuesta|cuestan)\b")

PRODUCT_QUERY_RE = re.compile(
    r"(ps5|play\s*5|ps4|xbox|nintendo|switch|consola|auricular|headset|monitor|notebook|silla|joystick|teclado|mouse)"
)

GREETING_RE = re.compile(
    r"^(hola|holis|buenas|buen\s+dia|buenos\s+dias|buen[ao]s?\s+tardes?|buen[ao]s?\s+noches?|hey|que\s+tal)\b"
)

OPTION_RE = re.compile(r"\b(?:opcion|opt|la|el|nro|numero)?\s*([1-8])\b")

# Words that carry no product content once a price question is stripped away.
FILLER_WORDS = frozenset(
    {
        "a", "al", "de", "del", "el", "la", "las", "los", "lo", "un", "una", "y", "o", "en",
        "me", "mi", "te", "tu", "que", "q", "hay", "tenes", "tienen", "tiene", "pasame", "pasas",
        "decime", "dame", "por", "para", "con", "sin", "es", "esta", "este", "eso", "esa",
        "precio", "precios", "cuanto", "cuantos", "vale", "valor", "sale", "salen", "cuesta",
        "cuestan", "hola", "buenas", "info", "consulta",
    }
)


def normalize_text(text: str) -> str:
    """Lowercase, strip diacritics and collapse whitespace. Emoji and punctuation survive."""
    decomposed = unicodedata.normalize("NFD", text or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return re.sub(r"\s+", " ", stripped.lower()).strip()


def is_test_mode(text: str) -> bool:
    return TEST_MODE_RE.search(normalize_text(text)) is not None


def is_ack_only(text: str) -> bool:
    """
    Short low-signal acknowledgement ("ok", "dale", "jaja", a thumbs up).
    Kept strict so that a real query is never mistaken for an ack.
    """
    normalized = normalize_text(text)
    normalized = re.sub(r"[\s!.?¡¿,]+$", "", normalized)
    normalized = re.sub(r"^[\s!.?¡¿,]+", "", normalized)
    if not normalized or len(normalized) > ACK_MAX_LENGTH:
        return False
    return ACK_RE.match(normalized) is not None


def wants_handoff(text: str) -> bool:
    return HANDOFF_RE.search(normalize_text(text)) is not None


def asks_price(text: str) -> bool:
    return PRICE_RE.search(normalize_text(text)) is not None


def looks_like_product_query(text: str) -> bool:
    return PRODUCT_QUERY_RE.search(normalize_text(text)) is not None


def is_greeting(text: str) -> bool:
    return GREETING_RE.match(normalize_text(text)) is not None


def extract_option_number(text: str) -> int | None:
    """Option number like "2", "opcion 3" or "la 1"."""
    match = OPTION_RE.search(normalize_text(text))
    if not match:
        return None
    return int(match.group(1))


def content_words(text: str) -> list[str]:
    words = re.sub(r"[^a-z0-9\s]", " ", normalize_text(text)).split()
    return [w for w in words if w not in FILLER_WORDS]


def has_query_content(text: str) -> bool:
    """True when something besides price/filler words is left, e.g. "cuanto sale la ps5"."""
    remaining = " ".join(content_words(text))
    return len(remaining) >= 3 and re.search(r"[a-z0-9]", remaining) is not None
