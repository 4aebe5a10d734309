"""
Tests del sync de precios desde el feed en vivo.
Cliente HTTP y sesión de BD mockeados: sin red ni base de datos.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from sync.data912_client import Data912Client, PriceFeedError
from sync.price_sync_service import PriceSyncService, filter_quotes

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def quote(symbol: str, close: float = 15000.0, volume: float = 5000, bid=None, ask=None) -> dict:
    return {
        "symbol": symbol,
        "px_bid": close - 10 if bid is None else bid,
        "px_ask": close + 10 if ask is None else ask,
        "q_bid": 10,
        "q_ask": 10,
        "v": volume,
        "c": close,
        "pct_change": 1.25,
    }


def make_mock_response(json_body: object, status_code: int = 200) -> MagicMock:
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.json.return_value = json_body
    return resp


def make_feed(response_or_exc) -> tuple[Data912Client, AsyncMock]:
    mock_http = AsyncMock(spec=httpx.AsyncClient)
    mock_http.request = AsyncMock(side_effect=[response_or_exc])
    mock_http.aclose = AsyncMock()
    return Data912Client(http_client=mock_http), mock_http


def make_db() -> AsyncMock:
    db = AsyncMock()
    db.execute = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    return db


# ---------------------------------------------------------------------------
# Tests: filtro
# ---------------------------------------------------------------------------


class TestFilterQuotes:
    def test_sorted_by_volume_desc(self):
        result = filter_quotes([quote("KO", volume=200), quote("AAPL", volume=9000), quote("MELI", volume=500)])
        assert [q.symbol for q in result] == ["AAPL", "MELI", "KO"]

    def test_drops_non_positive_prices(self):
        result = filter_quotes([quote("AAPL", bid=0), quote("KO", ask=-1), quote("MELI")])
        assert [q.symbol for q in result] == ["MELI"]

    @pytest.mark.parametrize("symbol", ["AAPLC", "AAPLD", "KO2", "KO3", "MELIL", "TSLAS", "SPYX"])
    def test_drops_derivative_suffixes(self, symbol):
        assert filter_quotes([quote(symbol)]) == []

    def test_known_tickers_exempt_from_suffix_rule(self):
        result = filter_quotes([quote("DIS"), quote("GOLD"), quote("AMZN")])
        assert {q.symbol for q in result} == {"DIS", "GOLD", "AMZN"}

    def test_drops_low_volume_and_penny_prices(self):
        result = filter_quotes([quote("AAPL", volume=99), quote("KO", close=0.5), quote("MELI", volume=100)])
        assert [q.symbol for q in result] == ["MELI"]

    def test_dedupes_first_wins(self):
        result = filter_quotes([quote("AAPL", close=100.0), quote("aapl", close=200.0)])
        assert len(result) == 1
        assert result[0].px_close == Decimal("100.0000")

    def test_excluded_symbols(self):
        result = filter_quotes([quote("AAPL"), quote("KO")], excluded=frozenset({"KO"}))
        assert [q.symbol for q in result] == ["AAPL"]

    def test_malformed_rows_skipped(self):
        result = filter_quotes([{"symbol": "AAPL"}, {"px_bid": 1}, {**quote("KO"), "c": "n/a"}, quote("MELI")])
        assert [q.symbol for q in result] == ["MELI"]


# ---------------------------------------------------------------------------
# Tests: cliente del feed
# ---------------------------------------------------------------------------


class TestData912Client:
    async def test_returns_list(self):
        client, mock_http = make_feed(make_mock_response([quote("AAPL")]))
        body = await client.get_cedear_quotes()
        assert body[0]["symbol"] == "AAPL"
        assert mock_http.request.call_args.args == ("GET", "/live/arg_cedears")

    async def test_http_error(self):
        client, _ = make_feed(make_mock_response({}, status_code=502))
        with pytest.raises(PriceFeedError) as exc_info:
            await client.get_cedear_quotes()
        assert exc_info.value.status_code == 502

    async def test_network_error(self):
        client, _ = make_feed(httpx.ConnectTimeout("timeout"))
        with pytest.raises(PriceFeedError, match="Error de red"):
            await client.get_cedear_quotes()

    async def test_unexpected_body(self):
        client, _ = make_feed(make_mock_response({"error": "x"}))
        with pytest.raises(PriceFeedError, match="Formato inesperado"):
            await client.get_cedear_quotes()


# ---------------------------------------------------------------------------
# Tests: servicio
# ---------------------------------------------------------------------------


class TestPriceSyncService:
    async def test_sync_upserts_filtered_quotes(self):
        client, mock_http = make_feed(make_mock_response([quote("AAPL"), quote("AAPLD"), quote("KO", volume=10)]))
        db = make_db()

        stats = await PriceSyncService(db=db, client=client, usd_rate=Decimal("1200")).sync()

        assert stats.fetched == 3
        assert stats.accepted == 1
        assert stats.upserted == 1
        assert stats.errors == []
        db.execute.assert_awaited_once()
        db.commit.assert_awaited_once()
        mock_http.aclose.assert_awaited_once()

    async def test_feed_error_is_recorded_not_raised(self):
        client, mock_http = make_feed(make_mock_response({}, status_code=500))
        db = make_db()

        stats = await PriceSyncService(db=db, client=client, usd_rate=Decimal("1000")).sync()

        assert stats.upserted == 0
        assert len(stats.errors) == 1
        db.execute.assert_not_awaited()
        mock_http.aclose.assert_awaited_once()

    async def test_db_error_rolls_back_and_raises(self):
        client, mock_http = make_feed(make_mock_response([quote("AAPL")]))
        db = make_db()
        db.execute.side_effect = RuntimeError("db down")

        with pytest.raises(RuntimeError, match="db down"):
            await PriceSyncService(db=db, client=client, usd_rate=Decimal("1000")).sync()

        db.rollback.assert_awaited_once()
        mock_http.aclose.assert_awaited_once()

    async def test_empty_feed_skips_upsert(self):
        client, _ = make_feed(make_mock_response([]))
        db = make_db()

        stats = await PriceSyncService(db=db, client=client, usd_rate=Decimal("1000")).sync()

        assert stats.upserted == 0
        db.execute.assert_not_awaited()
        db.commit.assert_awaited_once()
