"""
Estadísticas del optimizador de carteras.

Funciones puras sobre series de retornos diarios (numpy float64):
- varianza y covarianza POBLACIONALES (divide por N, no N-1)
- anualización con 252 ruedas por año
- Monte Carlo de pesos aleatorios para la frontera eficiente

Aquí float es correcto: son estadísticas, no datos contables.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np

TRADING_DAYS = 252
HIGH_CORRELATION_THRESHOLD = 0.85
Z_95 = 1.645

HYPOTHETICAL_SHOCKS = (-0.05, -0.10, -0.20, -0.30)
HISTORICAL_SCENARIOS = (
    ("Crisis 2008 (Lehman)", -0.09),
    ("COVID-19 Crash (Mar 2020)", -0.12),
    ("Flash Crash 2010", -0.06),
    ("Crisis Deuda EUR 2011", -0.07),
)

ArrayLike = Sequence[float] | np.ndarray


# ---------------------------------------------------------------------------
# Tipos de retorno
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CorrelationPair:
    ticker1: str
    ticker2: str
    correlation: float


@dataclass
class CorrelationData:
    tickers: list[str]
    matrix: list[list[float]]
    high_correlation_pairs: list[CorrelationPair] = field(default_factory=list)


@dataclass
class SimulatedPortfolios:
    returns: np.ndarray      # (num_portfolios,) retorno anualizado esperado
    volatility: np.ndarray   # (num_portfolios,) volatilidad anualizada
    sharpe: np.ndarray       # (num_portfolios,)
    weights: np.ndarray      # (num_portfolios, num_assets)


@dataclass(frozen=True)
class FrontierPoints:
    returns: list[float]
    volatility: list[float]


@dataclass(frozen=True)
class VaRResult:
    var_1d: float    # % de pérdida a 1 día, 95% de confianza
    var_10d: float


@dataclass
class StressScenario:
    portfolio: str
    scenarios: dict[str, float]


@dataclass
class StressTestResult:
    hypothetical: list[StressScenario]
    historical: list[StressScenario]


# ---------------------------------------------------------------------------
# Retornos y momentos
# ---------------------------------------------------------------------------


def _arr(values: ArrayLike) -> np.ndarray:
    return np.asarray(values, dtype=np.float64)


def simple_returns(prices: ArrayLike) -> np.ndarray:
    """r_i = (p_i - p_{i-1}) / p_{i-1}"""
    p = _arr(prices)
    if p.size < 2:
        return np.empty(0, dtype=np.float64)
    return np.diff(p) / p[:-1]


def variance(returns: ArrayLike) -> float:
    r = _arr(returns)
    return float(np.var(r)) if r.size else 0.0


def covariance(returns_a: ArrayLike, returns_b: ArrayLike) -> float:
    a, b = _arr(returns_a), _arr(returns_b)
    if a.size != b.size:
        raise ValueError("Las series deben tener la misma longitud")
    if a.size == 0:
        return 0.0
    return float(np.mean((a - a.mean()) * (b - b.mean())))


def correlation(returns_a: ArrayLike, returns_b: ArrayLike) -> float:
    """cov / (σa·σb). Una serie constante no correlaciona: devuelve 0."""
    denom = np.sqrt(variance(returns_a)) * np.sqrt(variance(returns_b))
    if denom == 0:
        return 0.0
    return covariance(returns_a, returns_b) / float(denom)


def covariance_matrix(series: Sequence[ArrayLike]) -> np.ndarray:
    return np.cov(np.vstack([_arr(s) for s in series]), ddof=0)


def portfolio_returns(asset_returns: Sequence[ArrayLike], weights: ArrayLike) -> np.ndarray:
    """Retorno diario de la cartera: Σ_j w_j · r_j[i]."""
    matrix = np.vstack([_arr(s) for s in asset_returns])
    w = _arr(weights)
    if w.size != matrix.shape[0]:
        raise ValueError("La cantidad de pesos debe coincidir con las series")
    return w @ matrix


def beta(returns: ArrayLike, benchmark_returns: ArrayLike) -> float:
    """cov(cartera, benchmark) / var(benchmark). Benchmark sin varianza → 1."""
    bench_var = variance(benchmark_returns)
    if bench_var == 0:
        return 1.0
    return covariance(returns, benchmark_returns) / bench_var


def annualized_volatility(returns: ArrayLike) -> float:
    return float(np.sqrt(variance(returns)) * np.sqrt(TRADING_DAYS))


def cumulative_returns(returns: ArrayLike) -> np.ndarray:
    """Crecimiento acumulado de 1 unidad: Π(1 + r_i) punto a punto."""
    return np.cumprod(1.0 + _arr(returns))


def cagr(returns: ArrayLike) -> float:
    """(Π(1+r_i))^(1/años) - 1 con años = ruedas / 252."""
    r = _arr(returns)
    if r.size == 0:
        return 0.0
    years = r.size / TRADING_DAYS
    growth = float(np.prod(1.0 + r))
    return growth ** (1.0 / years) - 1.0


def trailing_return(returns: ArrayLike, days: int = TRADING_DAYS) -> float:
    """Retorno compuesto de las últimas min(days, N) ruedas."""
    r = _arr(returns)
    if r.size == 0:
        return 0.0
    window = r[-min(days, r.size):]
    return float(np.prod(1.0 + window)) - 1.0


def annualized_mean_return(returns: ArrayLike) -> float:
    r = _arr(returns)
    return float(r.mean() * TRADING_DAYS) if r.size else 0.0


def sharpe_ratio(returns: ArrayLike, risk_free_rate: float = 0.0) -> float:
    vol = annualized_volatility(returns)
    if vol == 0:
        return 0.0
    return (annualized_mean_return(returns) - risk_free_rate) / vol


# ---------------------------------------------------------------------------
# Correlaciones
# ---------------------------------------------------------------------------


def correlation_matrix(tickers: Sequence[str], series: Sequence[ArrayLike]) -> CorrelationData:
    """
    Matriz NxN de correlaciones entre los tickers pedidos (sin benchmark).
    Los pares con |ρ| > 0.85 se marcan como alta correlación.
    """
    if len(tickers) != len(series):
        raise ValueError("Cada ticker necesita su serie de retornos")

    n = len(tickers)
    matrix = [[correlation(series[i], series[j]) for j in range(n)] for i in range(n)]
    pairs = [
        CorrelationPair(ticker1=tickers[i], ticker2=tickers[j], correlation=matrix[i][j])
        for i in range(n)
        for j in range(i + 1, n)
        if abs(matrix[i][j]) > HIGH_CORRELATION_THRESHOLD
    ]
    return CorrelationData(tickers=list(tickers), matrix=matrix, high_correlation_pairs=pairs)


# ---------------------------------------------------------------------------
# Monte Carlo / frontera eficiente
# ---------------------------------------------------------------------------


def normalize_weights(weights: ArrayLike) -> np.ndarray:
    w = _arr(weights)
    total = float(w.sum())
    if total <= 0:
        raise ValueError("La suma de los pesos debe ser mayor a 0")
    return w / total


def simulate_portfolios(
    mean_returns: ArrayLike,
    cov_matrix: np.ndarray,
    num_portfolios: int,
    min_weight: float = 0.0,
    risk_free_rate: float = 0.0,
    seed: int | None = None,
) -> SimulatedPortfolios:
    """
    Pesos aleatorios w = min_weight + (1 - n·min_weight) · Dirichlet(1,…,1):
    todos suman 1 y ninguno queda por debajo de min_weight.

    mean_returns y cov_matrix ya anualizados.
    """
    mu = _arr(mean_returns)
    n = mu.size
    if n == 0:
        raise ValueError("Se necesita al menos un activo para simular")
    if min_weight < 0 or min_weight * n > 1 + 1e-12:
        raise ValueError("El peso mínimo por activo es incompatible con la cantidad de activos")

    rng = np.random.default_rng(seed)
    free = max(0.0, 1.0 - n * min_weight)
    weights = min_weight + free * rng.dirichlet(np.ones(n), size=num_portfolios)

    rets = weights @ mu
    variances = np.einsum("ij,jk,ik->i", weights, np.asarray(cov_matrix, dtype=np.float64), weights)
    vols = np.sqrt(np.clip(variances, 0.0, None))
    with np.errstate(divide="ignore", invalid="ignore"):
        sharpe = np.where(vols > 0, (rets - risk_free_rate) / vols, 0.0)

    return SimulatedPortfolios(returns=rets, volatility=vols, sharpe=sharpe, weights=weights)


def select_max_sharpe(sim: SimulatedPortfolios) -> int:
    return int(np.argmax(sim.sharpe))


def select_min_volatility(sim: SimulatedPortfolios) -> int:
    return int(np.argmin(sim.volatility))


def select_target_return(sim: SimulatedPortfolios, target: float) -> int | None:
    """Menor volatilidad entre las carteras con retorno esperado >= target."""
    candidates = np.flatnonzero(sim.returns >= target)
    if candidates.size == 0:
        return None
    return int(candidates[np.argmin(sim.volatility[candidates])])


def efficient_frontier(
    sim: SimulatedPortfolios,
    num_points: int = 50,
    tolerance: float = 0.005,
) -> FrontierPoints:
    """
    Barre retornos objetivo entre el mínimo y el máximo simulado y toma,
    para cada uno, la menor volatilidad dentro de ±tolerance.
    """
    if sim.returns.size == 0:
        return FrontierPoints(returns=[], volatility=[])

    lo, hi = float(sim.returns.min()), float(sim.returns.max())
    targets = np.linspace(lo, hi, num_points + 1) if hi > lo else np.array([lo])

    frontier_returns: list[float] = []
    frontier_vol: list[float] = []
    for target in targets:
        mask = np.abs(sim.returns - target) <= tolerance
        if mask.any():
            frontier_returns.append(float(target))
            frontier_vol.append(float(sim.volatility[mask].min()))

    return FrontierPoints(returns=frontier_returns, volatility=frontier_vol)


# ---------------------------------------------------------------------------
# Riesgo: VaR y stress test
# ---------------------------------------------------------------------------


def value_at_risk(returns: ArrayLike, z: float = Z_95) -> VaRResult:
    """VaR paramétrico en % de pérdida: -(μ - z·σ)·100; a 10 días escala por √10."""
    r = _arr(returns)
    if r.size == 0:
        return VaRResult(var_1d=0.0, var_10d=0.0)
    var_1d = -(float(r.mean()) - z * float(r.std())) * 100.0
    return VaRResult(var_1d=var_1d, var_10d=var_1d * float(np.sqrt(10)))


def _shock_scenarios(sensitivity: float) -> tuple[dict[str, float], dict[str, float]]:
    hypothetical = {f"SPY {shock * 100:.0f}%": sensitivity * shock * 100.0 for shock in HYPOTHETICAL_SHOCKS}
    historical = {name: sensitivity * shock * 100.0 for name, shock in HISTORICAL_SCENARIOS}
    return hypothetical, historical


def stress_test(portfolio_beta: float, benchmark: str, benchmark_beta: float) -> StressTestResult:
    """
    Impacto estimado (% del valor) de caídas del SPY, escalado por el beta
    contra SPY de la cartera y del benchmark. SPY va como referencia con beta 1.
    """
    result = StressTestResult(hypothetical=[], historical=[])
    for name, sensitivity in (("Cartera", portfolio_beta), (benchmark, benchmark_beta), ("SPY", 1.0)):
        hypothetical, historical = _shock_scenarios(sensitivity)
        result.hypothetical.append(StressScenario(portfolio=name, scenarios=hypothetical))
        result.historical.append(StressScenario(portfolio=name, scenarios=historical))
    return result
