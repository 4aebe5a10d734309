"""
Actualización periódica de precios actuales desde el feed en vivo de CEDEARs.

Reglas:
- El scheduler es el ÚNICO proceso que escribe precios del feed en la BD
  (las actualizaciones manuales entran por PUT /prices).
- Filtro de cotizaciones: bid/ask/cierre positivos, sin derivados
  (sufijos C, D, 2, 3, L, S, X), volumen >= 100, cierre >= 1 ARS.
- Los tickers de la tabla de ratios nunca se descartan por sufijo (DIS, GOLD…).
- Dedupe por símbolo (gana la primera aparición), orden por volumen desc.
- Idempotente: upsert ON CONFLICT (ticker) DO UPDATE.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.cedear_ratios import is_known_ticker
from services.price_service import PriceService
from sync.data912_client import Data912Client, PriceFeedError

logger = structlog.get_logger(__name__)

DERIVATIVE_SUFFIX = re.compile(r".*[CDX23LS]$")
MIN_VOLUME = Decimal("100")
MIN_CLOSE_ARS = Decimal("1")
QUOTE_PRECISION = Decimal("0.0001")


# ---------------------------------------------------------------------------
# Tipos
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CedearQuote:
    symbol: str
    px_bid: Decimal
    px_ask: Decimal
    px_close: Decimal
    volume: Decimal
    pct_change: Decimal


@dataclass
class PriceSyncStats:
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    fetched: int = 0
    accepted: int = 0
    upserted: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return 0.0

    def finish(self) -> None:
        self.finished_at = datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Filtro puro
# ---------------------------------------------------------------------------


def _dec(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _parse_quote(raw: dict[str, Any]) -> CedearQuote | None:
    symbol = str(raw.get("symbol") or "").strip().upper()
    bid, ask, close = _dec(raw.get("px_bid")), _dec(raw.get("px_ask")), _dec(raw.get("c"))
    if not symbol or bid is None or ask is None or close is None:
        return None
    return CedearQuote(
        symbol=symbol,
        px_bid=bid.quantize(QUOTE_PRECISION, ROUND_HALF_UP),
        px_ask=ask.quantize(QUOTE_PRECISION, ROUND_HALF_UP),
        px_close=close.quantize(QUOTE_PRECISION, ROUND_HALF_UP),
        volume=(_dec(raw.get("v")) or Decimal("0")).quantize(Decimal("0.01"), ROUND_HALF_UP),
        pct_change=(_dec(raw.get("pct_change")) or Decimal("0")).quantize(QUOTE_PRECISION, ROUND_HALF_UP),
    )


def filter_quotes(
    raw_quotes: Iterable[dict[str, Any]],
    excluded: frozenset[str] = frozenset(),
) -> list[CedearQuote]:
    """Aplica las reglas de filtrado del feed y ordena por volumen descendente."""
    seen: set[str] = set()
    accepted: list[CedearQuote] = []

    for raw in raw_quotes:
        quote = _parse_quote(raw)
        if quote is None:
            continue
        if quote.px_bid <= 0 or quote.px_ask <= 0 or quote.px_close <= 0:
            continue
        if quote.symbol in excluded:
            continue
        if DERIVATIVE_SUFFIX.match(quote.symbol) and not is_known_ticker(quote.symbol):
            continue
        if quote.volume < MIN_VOLUME or quote.px_close < MIN_CLOSE_ARS:
            continue
        if quote.symbol in seen:
            continue
        seen.add(quote.symbol)
        accepted.append(quote)

    return sorted(accepted, key=lambda q: q.volume, reverse=True)


# ---------------------------------------------------------------------------
# Servicio
# ---------------------------------------------------------------------------


class PriceSyncService:
    """
    Uso:
        service = PriceSyncService(db=session, client=Data912Client(), usd_rate=Decimal("1000"))
        stats = await service.sync()

    El cliente se cierra al terminar el sync.
    """

    def __init__(
        self,
        db: AsyncSession,
        client: Data912Client,
        usd_rate: Decimal,
        excluded: frozenset[str] = frozenset(),
    ) -> None:
        self.db = db
        self._client = client
        self.usd_rate = usd_rate
        self.excluded = excluded
        self.stats = PriceSyncStats()

    async def sync(self) -> PriceSyncStats:
        log = logger.bind(usd_rate=str(self.usd_rate))
        log.info("price_sync.start")

        try:
            raw = await self._client.get_cedear_quotes()
            self.stats.fetched = len(raw)

            quotes = filter_quotes(raw, excluded=self.excluded)
            self.stats.accepted = len(quotes)
            log.info(
                "price_sync.filtered",
                fetched=self.stats.fetched,
                accepted=self.stats.accepted,
                top=[q.symbol for q in quotes[:10]],
            )

            rows = [
                {"ticker": q.symbol, "precio_ars": q.px_close, "usd_rate": self.usd_rate}
                for q in quotes
            ]
            self.stats.upserted = await PriceService(self.db).upsert_prices(rows)
            await self.db.commit()

        except PriceFeedError as exc:
            self.stats.errors.append(str(exc))
            log.warning("price_sync.feed_error", error=str(exc))

        except Exception as exc:
            await self.db.rollback()
            self.stats.errors.append(str(exc))
            log.error("price_sync.failed", error=str(exc))
            raise

        finally:
            self.stats.finish()
            await self._client.close()

        log.info(
            "price_sync.complete",
            upserted=self.stats.upserted,
            duration_seconds=round(self.stats.duration_seconds, 2),
            errors=len(self.stats.errors),
        )
        return self.stats
