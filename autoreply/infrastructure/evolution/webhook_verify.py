from __future__ import annotations

import hmac
import logging

logger = logging.getLogger(__name__)


def verify_shared_secret(header_secret: str | None, query_token: str | None, expected: str, env: str) -> bool:
    """
    Evolution cannot always send custom headers, so the secret may also arrive as
    a ?token= query parameter. Header wins when both are present.
    """
    provided = header_secret or query_token or ""
    if not expected:
        if env.lower() in {"dev", "local"}:
            logger.warning("BOT_WEBHOOK_SECRET not set; accepting webhook in dev mode")
            return True
        logger.error("BOT_WEBHOOK_SECRET not set; rejecting webhook")
        return False
    if not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
