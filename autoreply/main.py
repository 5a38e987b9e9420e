import asyncio
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from autoreply.api.webhooks import router as webhooks_router
from autoreply.core.config import settings
from autoreply.wiring.dependencies import (
    get_aggregator,
    get_dedup_store,
    get_evolution_client,
    get_followup_use_case,
    get_scheduler,
)


class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in ("conversation", "message_id", "intent", "reason", "delay_ms", "error", "text"):
            value = getattr(record, key, None)
            if value not in (None, ""):
                extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


handler = logging.StreamHandler()
handler.setFormatter(ContextFormatter("%(levelname)s:%(name)s:%(message)s"))

root = logging.getLogger()
root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
root.handlers.clear()
root.addHandler(handler)

logger = logging.getLogger(__name__)


async def followup_loop() -> None:
    use_case = get_followup_use_case()
    while True:
        await asyncio.sleep(settings.FOLLOWUP_INTERVAL_SECONDS)
        try:
            sent = await use_case.run(settings.EVOLUTION_INSTANCE)
            if sent:
                logger.info("Follow-up sweep finished", extra={"reason": f"sent={sent}"})
        except Exception as e:
            logger.exception("Follow-up sweep failed", extra={"error": str(e)})


async def dedup_purge_loop() -> None:
    dedup = get_dedup_store()
    scheduler = get_scheduler()
    while True:
        try:
            cutoff = scheduler.now() - settings.DEDUP_RETENTION_DAYS * 24 * 60 * 60
            removed = await dedup.purge_seen(cutoff)
            if removed:
                logger.info("Dedup records purged", extra={"reason": f"removed={removed}"})
        except Exception as e:
            logger.exception("Dedup purge failed", extra={"error": str(e)})
        await asyncio.sleep(settings.DEDUP_PURGE_INTERVAL_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    tasks: list[asyncio.Task] = []
    if settings.BACKGROUND_JOBS_ENABLED:
        tasks.append(asyncio.create_task(followup_loop()))
        tasks.append(asyncio.create_task(dedup_purge_loop()))
    try:
        yield
    finally:
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await get_aggregator().discard_all()
        await get_scheduler().shutdown()
        await get_evolution_client().aclose()


app = FastAPI(title="WhatsApp Auto Reply", version="1.0.0", lifespan=lifespan)

app.include_router(webhooks_router, tags=["webhooks"])


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
