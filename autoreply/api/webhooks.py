from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from autoreply.application.dto.webhook_event import EvolutionWebhookDTO
from autoreply.application.use_cases.handle_incoming_message import HandleIncomingMessageUseCase
from autoreply.application.use_cases.ingestion_gate import Accepted
from autoreply.infrastructure.evolution.webhook_verify import verify_shared_secret
from autoreply.wiring.dependencies import get_handle_incoming_message_use_case
from autoreply.core.config import settings


router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/webhooks/evolution")
async def evolution_webhook(
    request: Request,
    token: str | None = Query(None),
    use_case: HandleIncomingMessageUseCase = Depends(get_handle_incoming_message_use_case),
) -> JSONResponse:
    try:
        if not verify_shared_secret(request.headers.get("x-bot-secret"), token, settings.BOT_WEBHOOK_SECRET, settings.ENV):
            return JSONResponse({"ok": False}, status_code=401)

        body = await request.body()
        try:
            payload = json.loads(body.decode("utf-8")) if body else {}
            dto = EvolutionWebhookDTO.model_validate(payload)
        except Exception:
            logger.exception("Failed to parse webhook body")
            return JSONResponse({"ok": False}, status_code=400)

        if not dto.is_messages_upsert():
            return JSONResponse({"ok": True, "ignored": True, "event": dto.event})

        try:
            event = dto.to_event(settings.EVOLUTION_INSTANCE)
            result = await use_case.handle(event)
            if isinstance(result, Accepted):
                return JSONResponse({"ok": True, "queued": True})
            return JSONResponse({"ok": True, "ignored": True, "reason": result.reason})
        except Exception as e:
            logger.exception("Error processing webhook event", extra={"error": str(e)})
            return JSONResponse({"ok": False}, status_code=500)
    except Exception as e:
        logger.exception("Fatal error in webhook handler", extra={"error": str(e)})
        return JSONResponse({"ok": False}, status_code=500)
