"""
Tests del orquestador del optimizador.
El proveedor de series se reemplaza por un fake en memoria: sin red.
"""

from datetime import date, timedelta

import numpy as np
import pytest

from services.optimizer_service import (
    OptimizerDataError,
    OptimizerError,
    OptimizerRequest,
    OptimizerService,
    validate_request,
)
from sync.yahoo_client import HistoryProviderError, InsufficientDataError, PriceSeries

AS_OF = date(2024, 6, 1)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def make_series(symbol: str, points: int = 300, seed: int = 0, drift: float = 0.0004) -> PriceSeries:
    rng = np.random.default_rng(seed)
    returns = drift + rng.normal(0, 0.01, size=points - 1)
    prices = 100 * np.cumprod(np.concatenate([[1.0], 1 + returns]))
    dates = [AS_OF - timedelta(days=points - i) for i in range(points)]
    return PriceSeries(symbol=symbol, dates=dates, prices=prices.tolist())


class FakeProvider:
    def __init__(self, series: dict[str, PriceSeries], failing: set[str] | None = None) -> None:
        self.series = series
        self.failing = failing or set()
        self.calls: list[str] = []

    async def get_price_series(self, symbol: str, start: date, end: date) -> PriceSeries:
        self.calls.append(symbol)
        if symbol in self.failing or symbol not in self.series:
            raise HistoryProviderError(symbol, "sin datos", status_code=404)
        return self.series[symbol]


def default_provider(**overrides) -> FakeProvider:
    series = {
        "AAPL": make_series("AAPL", seed=1),
        "MSFT": make_series("MSFT", seed=2),
        "KO": make_series("KO", seed=3, drift=0.0001),
        "SPY": make_series("SPY", seed=4),
        "QQQ": make_series("QQQ", seed=5),
        "DIA": make_series("DIA", seed=6),
    }
    series.update(overrides)
    return FakeProvider(series)


# ---------------------------------------------------------------------------
# Tests: validación
# ---------------------------------------------------------------------------


class TestValidateRequest:
    def test_normalizes_symbols(self):
        req = validate_request(OptimizerRequest(tickers=[" aapl", "ko"], weights=[1, 1], benchmark="spy"))
        assert req.tickers == ["AAPL", "KO"]
        assert req.benchmark == "SPY"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"tickers": [], "weights": []},
            {"tickers": ["AAPL", "KO"], "weights": [1.0]},
            {"tickers": ["AAPL", "AAPL"], "weights": [1.0, 1.0]},
            {"tickers": ["AAPL"], "weights": [0.0]},
            {"tickers": ["AAPL"], "weights": [1.0], "years": 0},
            {"tickers": ["AAPL", "KO"], "weights": [1.0, 1.0], "min_weight": 0.6},
            {"tickers": ["AAPL"], "weights": [1.0], "mode": "turbo"},
        ],
    )
    def test_invalid_requests_raise(self, kwargs):
        with pytest.raises(OptimizerError):
            validate_request(OptimizerRequest(**kwargs))


# ---------------------------------------------------------------------------
# Tests: ejecución
# ---------------------------------------------------------------------------


async def test_analyze_mode_produces_metrics_without_optimization():
    provider = default_provider()
    service = OptimizerService(provider)

    result = await service.run(
        OptimizerRequest(tickers=["AAPL", "MSFT"], weights=[3, 1], benchmark="SPY"),
        as_of=AS_OF,
    )

    assert result.optimization is None
    assert result.weights == pytest.approx([0.75, 0.25])
    assert result.trading_days == 299
    assert len(result.performance_data.dates) == 299
    assert len(result.performance_data.portfolio_values) == 299
    assert result.correlation_data.tickers == ["AAPL", "MSFT"]
    assert [c.ticker for c in result.cagr_data] == ["AAPL", "MSFT", "SPY", "QQQ", "DIA", "Cartera"]
    assert [c.ticker for c in result.cagr_data if c.is_benchmark] == ["SPY"]
    assert [v.portfolio for v in result.var_data] == ["Cartera", "Benchmark"]
    assert set(provider.calls) == {"AAPL", "MSFT", "SPY", "QQQ", "DIA"}


async def test_portfolio_equal_to_benchmark_has_beta_one():
    provider = default_provider()
    result = await OptimizerService(provider).run(
        OptimizerRequest(tickers=["SPY"], weights=[1], benchmark="SPY"), as_of=AS_OF
    )
    assert result.portfolio_metrics.beta == pytest.approx(1.0)
    assert result.portfolio_metrics.correlation == pytest.approx(1.0)


async def test_series_truncated_to_shortest_most_recent():
    provider = default_provider(KO=make_series("KO", points=120, seed=3))
    result = await OptimizerService(provider).run(
        OptimizerRequest(tickers=["AAPL", "KO"], weights=[1, 1], benchmark="SPY"), as_of=AS_OF
    )
    assert result.trading_days == 119
    assert result.performance_data.dates[-1] == provider.series["SPY"].dates[-1]


async def test_sharpe_ignores_risk_free_rate_by_default():
    provider = default_provider()
    base = OptimizerRequest(tickers=["AAPL"], weights=[1], benchmark="SPY", risk_free_rate=0.0)
    with_rf = OptimizerRequest(tickers=["AAPL"], weights=[1], benchmark="SPY", risk_free_rate=0.05)

    r0 = await OptimizerService(provider).run(base, as_of=AS_OF)
    r1 = await OptimizerService(provider).run(with_rf, as_of=AS_OF)

    assert r1.portfolio_metrics.sharpe_ratio == pytest.approx(r0.portfolio_metrics.sharpe_ratio)
    assert r1.risk_free_rate == 0.05
    assert r1.risk_free_rate_applied is False


async def test_sharpe_applies_risk_free_rate_when_enabled():
    provider = default_provider()
    request = OptimizerRequest(tickers=["AAPL"], weights=[1], benchmark="SPY", risk_free_rate=0.05)

    plain = await OptimizerService(provider).run(request, as_of=AS_OF)
    applied = await OptimizerService(provider, apply_risk_free_rate=True).run(
        OptimizerRequest(tickers=["AAPL"], weights=[1], benchmark="SPY", risk_free_rate=0.05),
        as_of=AS_OF,
    )

    vol = plain.portfolio_metrics.volatility
    assert applied.portfolio_metrics.sharpe_ratio == pytest.approx(
        plain.portfolio_metrics.sharpe_ratio - 0.05 / vol
    )


async def test_optimize_mode_returns_frontier_and_portfolios():
    provider = default_provider()
    result = await OptimizerService(provider, num_portfolios=3000).run(
        OptimizerRequest(
            tickers=["AAPL", "MSFT", "KO"],
            weights=[1, 1, 1],
            benchmark="SPY",
            mode="optimize",
            min_weight=0.1,
            target_return=-10.0,
            seed=42,
        ),
        as_of=AS_OF,
    )

    opt = result.optimization
    assert opt is not None
    assert opt.max_sharpe.name == "Max Sharpe"
    assert opt.min_volatility.name == "Min Volatilidad"
    assert opt.min_volatility.volatility <= opt.max_sharpe.volatility
    assert sum(w.weight for w in opt.max_sharpe.weights) == pytest.approx(1.0)
    assert min(w.weight for w in opt.max_sharpe.weights) >= 0.1 - 1e-9
    # cualquier cartera supera un retorno objetivo de -1000%
    assert opt.target_return is not None
    assert opt.target_return.volatility == pytest.approx(opt.min_volatility.volatility)
    assert len(opt.random_portfolios.returns) == 2000
    assert len(opt.efficient_frontier.returns) > 0


async def test_optimize_mode_with_single_ticker_skips_simulation():
    result = await OptimizerService(default_provider()).run(
        OptimizerRequest(tickers=["AAPL"], weights=[1], benchmark="SPY", mode="optimize"),
        as_of=AS_OF,
    )
    assert result.optimization is None


async def test_missing_required_ticker_fails_whole_request():
    provider = default_provider()
    provider.failing.add("MSFT")

    with pytest.raises(OptimizerDataError) as exc_info:
        await OptimizerService(provider).run(
            OptimizerRequest(tickers=["AAPL", "MSFT"], weights=[1, 1], benchmark="SPY"),
            as_of=AS_OF,
        )
    assert exc_info.value.symbols == ["MSFT"]


async def test_missing_benchmark_fails_whole_request():
    provider = default_provider()
    with pytest.raises(OptimizerDataError):
        await OptimizerService(provider).run(
            OptimizerRequest(tickers=["AAPL"], weights=[1], benchmark="EWZ"), as_of=AS_OF
        )


async def test_missing_reference_benchmark_is_tolerated():
    provider = default_provider()
    provider.failing.add("DIA")

    result = await OptimizerService(provider).run(
        OptimizerRequest(tickers=["AAPL"], weights=[1], benchmark="QQQ"), as_of=AS_OF
    )

    assert result.missing_references == ["DIA"]
    assert "DIA" not in [c.ticker for c in result.cagr_data]
    assert [c.ticker for c in result.cagr_data if c.is_benchmark] == ["QQQ"]


async def test_short_reference_series_is_omitted():
    provider = default_provider(SPY=make_series("SPY", points=100, seed=4))

    result = await OptimizerService(provider).run(
        OptimizerRequest(tickers=["AAPL"], weights=[1], benchmark="QQQ"), as_of=AS_OF
    )

    assert result.trading_days == 299
    assert result.missing_references == ["SPY"]
    assert "SPY" not in [c.ticker for c in result.cagr_data]
    assert result.stress_test.hypothetical[1].portfolio == "QQQ"


async def test_insufficient_data_error_is_a_provider_failure():
    class ShortProvider(FakeProvider):
        async def get_price_series(self, symbol, start, end):
            if symbol == "KO":
                raise InsufficientDataError(symbol, 1)
            return await super().get_price_series(symbol, start, end)

    provider = ShortProvider(default_provider().series)
    with pytest.raises(OptimizerDataError):
        await OptimizerService(provider).run(
            OptimizerRequest(tickers=["KO"], weights=[1], benchmark="SPY"), as_of=AS_OF
        )
