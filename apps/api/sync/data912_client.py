"""
Cliente HTTP del feed público de cotizaciones en vivo de data912.com.
GET /live/arg_cedears → lista de {symbol, px_bid, px_ask, q_bid, q_ask, v, c, pct_change}
"""

from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)


class PriceFeedError(Exception):
    def __init__(self, msg: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(msg + (f" (HTTP {status_code})" if status_code else ""))


class Data912Client:
    """
    Uso:
        async with Data912Client() as client:
            quotes = await client.get_cedear_quotes()

    El http_client es inyectable para facilitar tests unitarios.
    """

    def __init__(
        self,
        base_url: str = "https://data912.com",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout),
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> "Data912Client":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def get_cedear_quotes(self) -> list[dict[str, Any]]:
        try:
            response = await self._client.request("GET", "/live/arg_cedears")
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            logger.warning("data912.network_error", error=str(exc))
            raise PriceFeedError(f"Error de red consultando cotizaciones: {exc}") from exc

        if response.status_code >= 400:
            raise PriceFeedError("El feed de cotizaciones respondió con error", response.status_code)

        body = response.json()
        if not isinstance(body, list):
            raise PriceFeedError("Formato inesperado en el feed de cotizaciones")

        logger.debug("data912.quotes_fetched", count=len(body))
        return body
