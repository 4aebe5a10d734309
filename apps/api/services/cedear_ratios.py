"""
Tabla estática de ratios CEDEAR → acción subyacente.

ratio = cantidad de CEDEARs que equivalen a 1 acción real del exterior
(AAPL 20:1 → 20 CEDEARs = 1 acción de Apple).

Política para tickers desconocidos: no se lanza error, se degrada a 0
acciones reales / 0 USD por acción. La búsqueda devuelve una variante
explícita (KnownRatio | UnknownRatio) para que el caller decida.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

SHARES_PRECISION = Decimal("0.00000001")


@dataclass(frozen=True)
class CedearInfo:
    ticker: str
    nombre: str
    ratio: Decimal
    sector: str


@dataclass(frozen=True)
class KnownRatio:
    ratio: Decimal


@dataclass(frozen=True)
class UnknownRatio:
    ticker: str


RatioLookup = KnownRatio | UnknownRatio


def _info(ticker: str, nombre: str, ratio: int, sector: str) -> tuple[str, CedearInfo]:
    return ticker, CedearInfo(ticker=ticker, nombre=nombre, ratio=Decimal(ratio), sector=sector)


CEDEAR_RATIOS: dict[str, CedearInfo] = dict(
    [
        _info("AAPL", "Apple Inc.", 20, "Technology"),
        _info("NVDA", "NVIDIA Corporation", 24, "Technology"),
        _info("TSLA", "Tesla, Inc.", 10, "Consumer Discretionary"),
        _info("GOOGL", "Alphabet Inc.", 40, "Technology"),
        _info("MSFT", "Microsoft Corporation", 8, "Technology"),
        _info("AMZN", "Amazon.com, Inc.", 15, "Consumer Discretionary"),
        _info("META", "Meta Platforms, Inc.", 12, "Technology"),
        _info("NFLX", "Netflix, Inc.", 25, "Communication Services"),
        _info("KO", "The Coca-Cola Company", 4, "Consumer Staples"),
        _info("DIS", "The Walt Disney Company", 6, "Communication Services"),
        _info("JPM", "JPMorgan Chase & Co.", 15, "Financials"),
        _info("V", "Visa Inc.", 44, "Financials"),
        _info("BA", "The Boeing Company", 1, "Industrials"),
        _info("XOM", "Exxon Mobil Corporation", 7, "Energy"),
        _info("PFE", "Pfizer Inc.", 5, "Healthcare"),
        _info("BABA", "Alibaba Group Holding Limited", 3, "Consumer Discretionary"),
        _info("GOLD", "Barrick Gold Corporation", 2, "Materials"),
        _info("JNJ", "Johnson & Johnson", 8, "Healthcare"),
        _info("WMT", "Walmart Inc.", 6, "Consumer Staples"),
        _info("PG", "The Procter & Gamble Company", 12, "Consumer Staples"),
        _info("HD", "The Home Depot, Inc.", 20, "Consumer Discretionary"),
    ]
)


def get_cedear_info(ticker: str) -> CedearInfo | None:
    """Ficha del CEDEAR (case-insensitive), o None si no está en la tabla."""
    return CEDEAR_RATIOS.get(ticker.strip().upper())


def is_known_ticker(ticker: str) -> bool:
    return get_cedear_info(ticker) is not None


def lookup_ratio(ticker: str) -> RatioLookup:
    info = get_cedear_info(ticker)
    if info is None:
        return UnknownRatio(ticker=ticker.strip().upper())
    return KnownRatio(ratio=info.ratio)


def underlying_shares(ticker: str, cantidad: int | Decimal) -> Decimal:
    """
    Acciones reales equivalentes a `cantidad` CEDEARs.
    Ticker desconocido → Decimal("0").
    """
    lookup = lookup_ratio(ticker)
    if isinstance(lookup, UnknownRatio):
        return Decimal("0")
    return (Decimal(cantidad) / lookup.ratio).quantize(SHARES_PRECISION, ROUND_HALF_UP)
