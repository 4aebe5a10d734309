"""
Proceso independiente del scheduler APScheduler.
Ejecuta la actualización periódica de precios de CEDEARs desde el feed en vivo.
El scheduler es el ÚNICO proceso que escribe precios del feed en la BD.

Arrancar con: python -m sync.scheduler
"""

import asyncio

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from core.config import settings
from core.database import session_scope
from core.logging import configure_logging
from sync.data912_client import Data912Client
from sync.price_sync_service import PriceSyncService

logger = structlog.get_logger(__name__)


async def sync_prices_job() -> None:
    """Un ciclo de sync con su propia sesión y su propio cliente HTTP."""
    try:
        async with session_scope() as session:
            service = PriceSyncService(
                db=session,
                client=Data912Client(base_url=settings.PRICE_FEED_URL),
                usd_rate=settings.DEFAULT_USD_RATE,
            )
            await service.sync()
    except Exception as exc:
        # el próximo ciclo reintenta; el job no debe tumbar el scheduler
        logger.error("scheduler.job_failed", job="sync_prices", error=str(exc))


def build_scheduler() -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        sync_prices_job,
        "interval",
        minutes=settings.PRICE_SYNC_INTERVAL_MINUTES,
        id="sync_prices",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    return scheduler


async def run() -> None:
    scheduler = build_scheduler()
    scheduler.start()
    logger.info(
        "scheduler.started",
        interval_minutes=settings.PRICE_SYNC_INTERVAL_MINUTES,
        env=settings.APP_ENV,
    )
    # primer sync inmediato, luego cada intervalo
    await sync_prices_job()
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        logger.info("scheduler.stopped")


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    try:
        asyncio.run(run())
    except (KeyboardInterrupt, SystemExit):
        pass


if __name__ == "__main__":
    main()
