"""
Cliente HTTP para el chart API v8 de Yahoo Finance (precios históricos).

Reglas:
- Cierre AJUSTADO diario (includeAdjustedClose=true), se descartan nulls/NaN
- Menos de 2 precios válidos → InsufficientDataError
- Backoff exponencial en 429/5xx y errores de red; 4xx restantes fallan al instante
- Timeout por request configurable
"""

import asyncio
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


# ---------------------------------------------------------------------------
# Excepciones
# ---------------------------------------------------------------------------


class HistoryProviderError(Exception):
    def __init__(self, symbol: str, msg: str, status_code: int | None = None) -> None:
        self.symbol = symbol
        self.msg = msg
        self.status_code = status_code
        super().__init__(f"{symbol}: {msg}" + (f" (HTTP {status_code})" if status_code else ""))


class InsufficientDataError(HistoryProviderError):
    def __init__(self, symbol: str, points: int) -> None:
        self.points = points
        super().__init__(symbol, f"datos insuficientes ({points} precios válidos)")


# ---------------------------------------------------------------------------
# Tipos de retorno
# ---------------------------------------------------------------------------


@dataclass
class PriceSeries:
    symbol: str
    dates: list[date] = field(default_factory=list)
    prices: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.prices)


def _epoch(d: date) -> int:
    return int(datetime.combine(d, time.min, tzinfo=timezone.utc).timestamp())


def parse_chart_response(symbol: str, body: dict[str, Any]) -> PriceSeries:
    """
    Extrae (fecha, cierre ajustado) del JSON del chart API.
    Los puntos con precio null/NaN o sin timestamp se descartan.
    """
    chart = body.get("chart") or {}
    if chart.get("error"):
        error = chart["error"]
        raise HistoryProviderError(symbol, str(error.get("description") or error))

    results = chart.get("result") or []
    if not results:
        raise HistoryProviderError(symbol, "respuesta sin resultados")

    result = results[0]
    timestamps = result.get("timestamp") or []
    adjclose = ((result.get("indicators") or {}).get("adjclose") or [{}])[0].get("adjclose") or []

    series = PriceSeries(symbol=symbol)
    for ts, price in zip(timestamps, adjclose):
        if ts is None or price is None or math.isnan(price):
            continue
        series.dates.append(datetime.fromtimestamp(ts, tz=timezone.utc).date())
        series.prices.append(float(price))

    if len(series) < 2:
        raise InsufficientDataError(symbol, len(series))
    return series


# ---------------------------------------------------------------------------
# Cliente principal
# ---------------------------------------------------------------------------


class YahooChartClient:
    """
    Cliente asíncrono del chart API de Yahoo.

    Uso:
        async with YahooChartClient() as client:
            series = await client.get_price_series("AAPL", start, end)

    El http_client es inyectable para facilitar tests unitarios.
    """

    BASE_BACKOFF: float = 2.0  # segundos

    def __init__(
        self,
        base_url: str = "https://query1.finance.yahoo.com",
        timeout: float = 15.0,
        max_retries: int = 3,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self.max_retries = max(1, max_retries)
        self._client = http_client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": USER_AGENT},
        )

    async def __aenter__(self) -> "YahooChartClient":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # -----------------------------------------------------------------------
    # Request base con retry
    # -----------------------------------------------------------------------

    async def _get_json(self, symbol: str, path: str, params: dict[str, Any]) -> dict[str, Any]:
        last_exc: Exception | None = None

        for attempt in range(self.max_retries):
            backoff = self.BASE_BACKOFF ** (attempt + 1)
            try:
                response = await self._client.request("GET", path, params=params)
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                logger.warning(
                    "yahoo.network_error",
                    symbol=symbol,
                    attempt=attempt,
                    backoff=backoff,
                    error=str(exc),
                )
                last_exc = HistoryProviderError(symbol, f"error de red: {exc}")
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(backoff)
                continue

            if response.status_code == 429 or response.status_code >= 500:
                logger.warning(
                    "yahoo.retryable_status",
                    symbol=symbol,
                    status=response.status_code,
                    attempt=attempt,
                    backoff=backoff,
                )
                last_exc = HistoryProviderError(
                    symbol, "el proveedor no respondió", status_code=response.status_code
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(backoff)
                continue

            if response.status_code >= 400:
                raise HistoryProviderError(
                    symbol, "símbolo no disponible", status_code=response.status_code
                )

            return response.json()

        raise last_exc or HistoryProviderError(symbol, "reintentos agotados")

    # -----------------------------------------------------------------------
    # Endpoints
    # -----------------------------------------------------------------------

    async def get_price_series(self, symbol: str, start: date, end: date) -> PriceSeries:
        """GET /v8/finance/chart/{symbol}: cierres ajustados diarios entre start y end."""
        params = {
            "period1": _epoch(start),
            "period2": _epoch(end),
            "interval": "1d",
            "includeAdjustedClose": "true",
        }
        body = await self._get_json(symbol, f"/v8/finance/chart/{symbol}", params)
        series = parse_chart_response(symbol, body)
        logger.debug("yahoo.series_fetched", symbol=symbol, points=len(series))
        return series
