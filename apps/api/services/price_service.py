"""
Precios actuales por ticker (tabla current_prices).
Una fila por ticker, last-write-wins: upsert ON CONFLICT (ticker) DO UPDATE.
"""

from decimal import Decimal

import structlog
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from models.current_price import CurrentPrice

logger = structlog.get_logger(__name__)


class PriceService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_prices(self) -> list[CurrentPrice]:
        result = await self.db.execute(select(CurrentPrice).order_by(CurrentPrice.ticker))
        return list(result.scalars().all())

    async def get_price(self, ticker: str) -> CurrentPrice | None:
        result = await self.db.execute(
            select(CurrentPrice).where(CurrentPrice.ticker == ticker.strip().upper())
        )
        return result.scalar_one_or_none()

    async def upsert_prices(self, rows: list[dict]) -> int:
        """
        rows: [{"ticker", "precio_ars", "usd_rate"}]. Sin commit: lo hace el caller.
        Devuelve la cantidad de filas enviadas.
        """
        if not rows:
            return 0
        stmt = pg_insert(CurrentPrice).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["ticker"],
            set_={
                "precio_ars": stmt.excluded.precio_ars,
                "usd_rate": stmt.excluded.usd_rate,
                "updated_at": func.now(),
            },
        )
        await self.db.execute(stmt)
        return len(rows)

    async def upsert_price(self, ticker: str, precio_ars: Decimal, usd_rate: Decimal) -> CurrentPrice:
        """Actualización manual de un precio. Devuelve la fila resultante."""
        if precio_ars <= 0 or usd_rate <= 0:
            raise ValueError("precio_ars y usd_rate deben ser mayores a 0")

        ticker = ticker.strip().upper()
        await self.upsert_prices([{"ticker": ticker, "precio_ars": precio_ars, "usd_rate": usd_rate}])
        await self.db.commit()
        logger.info("price.upserted", ticker=ticker, precio_ars=str(precio_ars), usd_rate=str(usd_rate))

        price = await self.get_price(ticker)
        if price is None:
            raise RuntimeError(f"El upsert de {ticker} no dejó fila en current_prices")
        # la sesión puede tener cacheada la versión anterior
        await self.db.refresh(price)
        return price
