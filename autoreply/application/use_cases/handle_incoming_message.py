from __future__ import annotations

import logging

from autoreply.application.use_cases.aggregator import Aggregator
from autoreply.application.use_cases.ingestion_gate import Accepted, IngestionGate, IngestionResult
from autoreply.domain.entities.message import InboundEvent


class HandleIncomingMessageUseCase:
    """
    Webhook entry point. Filters the event and queues it for debounced processing;
    the reply itself happens later, off the request path.
    """

    def __init__(self, gate: IngestionGate, aggregator: Aggregator) -> None:
        self._gate = gate
        self._aggregator = aggregator
        self._logger = logging.getLogger(__name__)

    async def handle(self, event: InboundEvent) -> IngestionResult:
        result = await self._gate.accept(event)
        if not isinstance(result, Accepted):
            self._logger.info(
                "Inbound event ignored",
                extra={"message_id": event.message_id or None, "reason": result.reason},
            )
            return result

        await self._aggregator.submit(result.message)
        return result
