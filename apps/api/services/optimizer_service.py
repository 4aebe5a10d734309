"""
Orquestación del optimizador de carteras.

Flujo:
1. Validar el pedido (tickers, pesos, peso mínimo, años)
2. Descargar en paralelo las series de tickers + benchmark (obligatorias) y
   SPY/QQQ/DIA de referencia (opcionales)
3. Si falta cualquier serie obligatoria, falla el pedido completo
4. Truncar todas las series a la más corta (los N retornos más recientes)
5. Calcular métricas con statistics_service; en modo optimize, Monte Carlo

El proveedor de series se inyecta: cualquier objeto con
`async get_price_series(symbol, start, end) -> PriceSeries`.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date, timedelta

import numpy as np
import structlog

from services import statistics_service as stats
from sync.yahoo_client import HistoryProviderError, PriceSeries

logger = structlog.get_logger(__name__)

REFERENCE_BENCHMARKS = ("SPY", "QQQ", "DIA")
OPTIMIZER_MODES = ("analyze", "optimize")
RANDOM_SAMPLE_LIMIT = 2000
FRONTIER_POINTS = 50


# ---------------------------------------------------------------------------
# Excepciones
# ---------------------------------------------------------------------------


class OptimizerError(ValueError):
    """Pedido de optimización inválido."""


class OptimizerDataError(OptimizerError):
    """No se pudieron obtener series suficientes para los símbolos obligatorios."""

    def __init__(self, msg: str, symbols: list[str] | None = None) -> None:
        self.symbols = symbols or []
        super().__init__(msg)


# ---------------------------------------------------------------------------
# Tipos
# ---------------------------------------------------------------------------


@dataclass
class OptimizerRequest:
    tickers: list[str]
    weights: list[float]
    benchmark: str = "SPY"
    years: float = 5
    risk_free_rate: float = 0.02
    min_weight: float = 0.0
    target_return: float | None = None
    mode: str = "analyze"
    num_portfolios: int | None = None
    seed: int | None = None


@dataclass(frozen=True)
class PortfolioMetrics:
    beta: float
    volatility: float
    cagr: float
    return_12m: float
    correlation: float
    sharpe_ratio: float


@dataclass(frozen=True)
class BenchmarkMetrics:
    volatility: float
    cagr: float
    return_12m: float
    sharpe_ratio: float


@dataclass
class PerformanceData:
    dates: list[date]
    portfolio_values: list[float]
    benchmark_values: list[float]


@dataclass(frozen=True)
class CAGRData:
    ticker: str
    cagr: float
    is_portfolio: bool = False
    is_benchmark: bool = False


@dataclass(frozen=True)
class VaRRow:
    portfolio: str
    var_1d: float
    var_10d: float


@dataclass(frozen=True)
class PortfolioWeight:
    asset: str
    weight: float


@dataclass
class OptimizedPortfolio:
    name: str
    returns: float
    volatility: float
    sharpe: float
    weights: list[PortfolioWeight]


@dataclass
class RandomPortfolios:
    returns: list[float]
    volatility: list[float]
    sharpe: list[float]


@dataclass
class OptimizationData:
    max_sharpe: OptimizedPortfolio
    min_volatility: OptimizedPortfolio
    target_return: OptimizedPortfolio | None
    efficient_frontier: stats.FrontierPoints
    random_portfolios: RandomPortfolios


@dataclass
class OptimizerResult:
    tickers: list[str]
    weights: list[float]
    benchmark: str
    risk_free_rate: float
    risk_free_rate_applied: bool
    trading_days: int
    portfolio_metrics: PortfolioMetrics
    benchmark_metrics: BenchmarkMetrics
    correlation_data: stats.CorrelationData
    performance_data: PerformanceData
    cagr_data: list[CAGRData]
    var_data: list[VaRRow]
    stress_test: stats.StressTestResult
    optimization: OptimizationData | None = None
    missing_references: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Servicio
# ---------------------------------------------------------------------------


def _normalize_symbol(symbol: str) -> str:
    return symbol.strip().upper()


def validate_request(request: OptimizerRequest) -> OptimizerRequest:
    """Normaliza tickers a mayúsculas y valida el pedido. Lanza OptimizerError."""
    tickers = [_normalize_symbol(t) for t in request.tickers if t and t.strip()]
    benchmark = _normalize_symbol(request.benchmark or "")

    if not tickers:
        raise OptimizerError("Debe ingresar al menos 1 ticker")
    if len(set(tickers)) != len(tickers):
        raise OptimizerError("Hay tickers repetidos")
    if len(request.weights) != len(tickers):
        raise OptimizerError("La cantidad de pesos debe coincidir con los tickers")
    if any(w < 0 for w in request.weights) or sum(request.weights) <= 0:
        raise OptimizerError("Los pesos deben ser no negativos y sumar más de 0")
    if not benchmark:
        raise OptimizerError("Debe indicar un benchmark")
    if request.years <= 0:
        raise OptimizerError("El período en años debe ser mayor a 0")
    if request.min_weight < 0 or request.min_weight * len(tickers) > 1:
        raise OptimizerError("El peso mínimo por activo es incompatible con la cantidad de tickers")
    if request.mode not in OPTIMIZER_MODES:
        raise OptimizerError(f"Modo inválido: {request.mode}")

    request.tickers = tickers
    request.benchmark = benchmark
    return request


class OptimizerService:
    """
    apply_risk_free_rate=False reproduce el Sharpe observado (tasa libre 0%);
    la tasa pedida igual se devuelve en el resultado.
    """

    def __init__(
        self,
        provider,
        num_portfolios: int = 5000,
        apply_risk_free_rate: bool = False,
    ) -> None:
        self.provider = provider
        self.num_portfolios = num_portfolios
        self.apply_risk_free_rate = apply_risk_free_rate

    # -----------------------------------------------------------------------
    # Descarga de series
    # -----------------------------------------------------------------------

    async def _fetch_all(
        self,
        required: list[str],
        optional: list[str],
        start: date,
        end: date,
    ) -> tuple[dict[str, PriceSeries], list[str]]:
        symbols = required + optional
        results = await asyncio.gather(
            *(self.provider.get_price_series(s, start, end) for s in symbols),
            return_exceptions=True,
        )

        series: dict[str, PriceSeries] = {}
        failed: list[str] = []
        missing_optional: list[str] = []
        for symbol, result in zip(symbols, results):
            if isinstance(result, HistoryProviderError):
                logger.warning("optimizer.fetch_failed", symbol=symbol, error=str(result))
                (failed if symbol in required else missing_optional).append(symbol)
            elif isinstance(result, BaseException):
                raise result
            else:
                series[symbol] = result

        if failed:
            raise OptimizerDataError(
                f"No se pudieron obtener datos para: {', '.join(failed)}", symbols=failed
            )
        return series, missing_optional

    # -----------------------------------------------------------------------
    # Ejecución
    # -----------------------------------------------------------------------

    async def run(self, request: OptimizerRequest, as_of: date | None = None) -> OptimizerResult:
        request = validate_request(request)
        tickers, benchmark = request.tickers, request.benchmark

        end = as_of or date.today()
        start = end - timedelta(days=round(365.25 * request.years))

        required = list(dict.fromkeys([*tickers, benchmark]))
        optional = [s for s in REFERENCE_BENCHMARKS if s not in required]

        logger.info(
            "optimizer.started",
            tickers=tickers,
            benchmark=benchmark,
            years=request.years,
            mode=request.mode,
        )
        series, missing_optional = await self._fetch_all(required, optional, start, end)

        returns = {s: stats.simple_returns(ps.prices) for s, ps in series.items()}
        n = min(returns[s].size for s in required)
        if n < 2:
            raise OptimizerDataError("Datos insuficientes: se necesitan al menos 2 ruedas en común")

        # referencias opcionales más cortas que la ventana común se omiten
        for ref in optional:
            if ref in returns and returns[ref].size < n:
                logger.warning(
                    "optimizer.reference_too_short",
                    symbol=ref,
                    points=int(returns[ref].size),
                    required=n,
                )
                del returns[ref]
                missing_optional.append(ref)

        # los N retornos más recientes de cada serie: alinea por fecha final,
        # a diferencia de cortar los N primeros
        aligned = {s: r[-n:] for s, r in returns.items()}
        asset_returns = [aligned[t] for t in tickers]
        bench_returns = aligned[benchmark]

        weights = stats.normalize_weights(request.weights)
        port_returns = stats.portfolio_returns(asset_returns, weights)
        rf = request.risk_free_rate if self.apply_risk_free_rate else 0.0

        portfolio_metrics = PortfolioMetrics(
            beta=stats.beta(port_returns, bench_returns),
            volatility=stats.annualized_volatility(port_returns),
            cagr=stats.cagr(port_returns),
            return_12m=stats.trailing_return(port_returns),
            correlation=stats.correlation(port_returns, bench_returns),
            sharpe_ratio=stats.sharpe_ratio(port_returns, rf),
        )
        benchmark_metrics = BenchmarkMetrics(
            volatility=stats.annualized_volatility(bench_returns),
            cagr=stats.cagr(bench_returns),
            return_12m=stats.trailing_return(bench_returns),
            sharpe_ratio=stats.sharpe_ratio(bench_returns, rf),
        )

        # fechas de los retornos: el retorno i corresponde al precio i+1
        bench_dates = series[benchmark].dates[1:][-n:]
        performance = PerformanceData(
            dates=bench_dates,
            portfolio_values=stats.cumulative_returns(port_returns).tolist(),
            benchmark_values=stats.cumulative_returns(bench_returns).tolist(),
        )

        cagr_data = [CAGRData(ticker=t, cagr=stats.cagr(aligned[t])) for t in tickers]
        cagr_data += [
            CAGRData(ticker=ref, cagr=stats.cagr(aligned[ref]), is_benchmark=ref == benchmark)
            for ref in REFERENCE_BENCHMARKS
            if ref in aligned
        ]
        cagr_data.append(CAGRData(ticker="Cartera", cagr=portfolio_metrics.cagr, is_portfolio=True))

        port_var = stats.value_at_risk(port_returns)
        bench_var = stats.value_at_risk(bench_returns)
        var_data = [
            VaRRow(portfolio="Cartera", var_1d=port_var.var_1d, var_10d=port_var.var_10d),
            VaRRow(portfolio="Benchmark", var_1d=bench_var.var_1d, var_10d=bench_var.var_10d),
        ]

        spy_returns = aligned.get("SPY")
        stress = stats.stress_test(
            portfolio_beta=stats.beta(port_returns, spy_returns if spy_returns is not None else bench_returns),
            benchmark=benchmark,
            benchmark_beta=stats.beta(bench_returns, spy_returns) if spy_returns is not None else 1.0,
        )

        result = OptimizerResult(
            tickers=tickers,
            weights=weights.tolist(),
            benchmark=benchmark,
            risk_free_rate=request.risk_free_rate,
            risk_free_rate_applied=self.apply_risk_free_rate,
            trading_days=n,
            portfolio_metrics=portfolio_metrics,
            benchmark_metrics=benchmark_metrics,
            correlation_data=stats.correlation_matrix(tickers, asset_returns),
            performance_data=performance,
            cagr_data=cagr_data,
            var_data=var_data,
            stress_test=stress,
            missing_references=missing_optional,
        )

        if request.mode == "optimize" and len(tickers) >= 2:
            result.optimization = self._optimize(request, asset_returns, rf)

        logger.info(
            "optimizer.completed",
            tickers=tickers,
            trading_days=n,
            optimized=result.optimization is not None,
        )
        return result

    def _optimize(
        self,
        request: OptimizerRequest,
        asset_returns: list[np.ndarray],
        rf: float,
    ) -> OptimizationData:
        mean_returns = np.array([stats.annualized_mean_return(r) for r in asset_returns])
        cov = stats.covariance_matrix(asset_returns) * stats.TRADING_DAYS

        sim = stats.simulate_portfolios(
            mean_returns,
            cov,
            num_portfolios=request.num_portfolios or self.num_portfolios,
            min_weight=request.min_weight,
            risk_free_rate=rf,
            seed=request.seed,
        )

        def portfolio_at(idx: int, name: str) -> OptimizedPortfolio:
            return OptimizedPortfolio(
                name=name,
                returns=float(sim.returns[idx]),
                volatility=float(sim.volatility[idx]),
                sharpe=float(sim.sharpe[idx]),
                weights=[
                    PortfolioWeight(asset=t, weight=float(w))
                    for t, w in zip(request.tickers, sim.weights[idx])
                ],
            )

        target = None
        if request.target_return is not None:
            idx = stats.select_target_return(sim, request.target_return)
            if idx is not None:
                target = portfolio_at(idx, f"Target {request.target_return * 100:.1f}%")

        return OptimizationData(
            max_sharpe=portfolio_at(stats.select_max_sharpe(sim), "Max Sharpe"),
            min_volatility=portfolio_at(stats.select_min_volatility(sim), "Min Volatilidad"),
            target_return=target,
            efficient_frontier=stats.efficient_frontier(sim, num_points=FRONTIER_POINTS),
            random_portfolios=RandomPortfolios(
                returns=sim.returns[:RANDOM_SAMPLE_LIMIT].tolist(),
                volatility=sim.volatility[:RANDOM_SAMPLE_LIMIT].tolist(),
                sharpe=sim.sharpe[:RANDOM_SAMPLE_LIMIT].tolist(),
            ),
        )
