"""
Servicio de cálculos contables del portafolio de CEDEARs.

Reglas críticas:
- NUNCA float para datos de negocio: siempre Decimal("...") o Decimal(str(valor))
- Posiciones: una sola pasada en orden de inserción; la venta descuenta del
  pool de costo SUS PROPIOS totales (no el costo promedio de las unidades vendidas)
- FIFO: por ticker, orden ascendente de fecha; cada match emite una OperacionCerrada
- Las funciones puras no tocan BD ni IO: reciben transacciones + mapa de precios
  y devuelven dataclasses. PortfolioService es la capa fina con acceso a BD.
"""

import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.current_price import CurrentPrice
from models.transaction import Transaction
from services.cedear_ratios import UnknownRatio, lookup_ratio, underlying_shares

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Constantes
# ---------------------------------------------------------------------------

TIPO_COMPRA = "compra"
TIPO_VENTA = "venta"

DEFAULT_USD_RATE = Decimal("1000")
DEFAULT_CATEGORIA = "Inversión"

# Precisiones de redondeo
PRICE_PRECISION = Decimal("0.00000001")   # 8 decimales para montos y precios
ARS_PRECISION = Decimal("0.0001")         # 4 decimales para totales ARS persistidos
PCT_PRECISION = Decimal("0.01")           # 2 decimales para porcentajes

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


# ---------------------------------------------------------------------------
# Errores de dominio
# ---------------------------------------------------------------------------


class InvalidTransactionError(ValueError):
    """Transacción mal formada (cantidad, precio o tipo de cambio no positivos)."""


class OverSellError(InvalidTransactionError):
    """La venta supera la cantidad abierta del ticker en su fecha."""

    def __init__(self, ticker: str, fecha: date, faltante: int) -> None:
        self.ticker = ticker
        self.fecha = fecha
        self.faltante = faltante
        super().__init__(
            f"Venta de {ticker} el {fecha.isoformat()} excede la tenencia abierta en {faltante} CEDEARs"
        )


# ---------------------------------------------------------------------------
# Tipos de retorno
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransactionDerived:
    usd_por_cedear: Decimal
    cantidad_acciones_reales: Decimal
    precio_accion_usd: Decimal   # 0 si el ticker no tiene ratio conocido


@dataclass(frozen=True)
class Variation:
    variacion_ars: Decimal
    variacion_usd: Decimal


@dataclass
class Position:
    ticker: str
    cantidad: int
    cantidad_acciones_reales: Decimal
    precio_promedio_ars: Decimal
    precio_promedio_usd: Decimal
    costo_total_ars: Decimal
    costo_total_usd: Decimal
    valor_actual_ars: Decimal
    valor_actual_usd: Decimal
    ganancia_no_realizada_ars: Decimal
    ganancia_no_realizada_usd: Decimal
    porcentaje_cartera: Decimal     # se rellena cuando se conoce el total
    fecha_promedio_compra: date
    usd_historico_promedio: Decimal
    dias_tenencia_promedio: int
    variacion_ars: Decimal
    variacion_usd: Decimal


@dataclass(frozen=True)
class OperacionCerrada:
    ticker: str
    fecha_compra: date
    fecha_venta: date
    cantidad: int
    precio_compra_ars: Decimal
    precio_venta_ars: Decimal
    ganancia_ars: Decimal
    ganancia_usd: Decimal
    dias_tenencia: int


@dataclass
class RealizedGains:
    ars: Decimal
    usd: Decimal
    operaciones: list[OperacionCerrada] = field(default_factory=list)


@dataclass
class PortfolioSummary:
    valor_total_ars: Decimal
    valor_total_usd: Decimal
    ganancia_total_no_realizada_ars: Decimal
    ganancia_total_no_realizada_usd: Decimal
    ganancia_total_realizada_ars: Decimal
    ganancia_total_realizada_usd: Decimal
    usd_rate_actual: Decimal
    posiciones: list[Position]
    operaciones_cerradas: list[OperacionCerrada]


@dataclass
class _RunningPosition:
    cantidad: int = 0
    costo_total_ars: Decimal = _ZERO
    costo_total_usd: Decimal = _ZERO
    # fecha promedio como ordinal fraccionario para poder ponderarla
    fecha_ordinal: Decimal = _ZERO
    usd_historico: Decimal = _ZERO


@dataclass
class _Lot:
    restante: int
    precio_ars: Decimal
    total_usd: Decimal
    cantidad_original: int
    fecha: date


# ---------------------------------------------------------------------------
# Algoritmos contables puros (sin BD, sin IO, 100% testables)
# ---------------------------------------------------------------------------


def _q(value: Decimal, precision: Decimal = PRICE_PRECISION) -> Decimal:
    return value.quantize(precision, ROUND_HALF_UP)


def compute_totals(
    precio_ars: Decimal,
    cantidad: int,
    usd_rate_historico: Decimal,
) -> tuple[Decimal, Decimal]:
    """
    total_ars = precio_ars * cantidad
    total_usd = total_ars / usd_rate_historico
    Lanza InvalidTransactionError si algún input no es positivo.
    """
    if cantidad <= 0:
        raise InvalidTransactionError("La cantidad debe ser un entero mayor a 0")
    if precio_ars <= _ZERO:
        raise InvalidTransactionError("El precio en ARS debe ser mayor a 0")
    if usd_rate_historico <= _ZERO:
        raise InvalidTransactionError("El tipo de cambio histórico debe ser mayor a 0")

    total_ars = _q(precio_ars * cantidad, ARS_PRECISION)
    total_usd = _q(total_ars / usd_rate_historico)
    return total_ars, total_usd


def enhance_transaction(ticker: str, cantidad: int, total_usd: Decimal) -> TransactionDerived:
    """
    Campos derivados de una transacción:
      usd_por_cedear           = total_usd / cantidad
      cantidad_acciones_reales = cantidad / ratio (0 si el ticker es desconocido)
      precio_accion_usd        = usd_por_cedear * ratio (0 si el ticker es desconocido)
    """
    if cantidad <= 0:
        raise InvalidTransactionError("La cantidad debe ser un entero mayor a 0")

    usd_por_cedear = _q(total_usd / cantidad)
    lookup = lookup_ratio(ticker)
    if isinstance(lookup, UnknownRatio):
        logger.debug("cedear.unknown_ticker", ticker=lookup.ticker)
        precio_accion_usd = _ZERO
    else:
        precio_accion_usd = _q(usd_por_cedear * lookup.ratio)

    return TransactionDerived(
        usd_por_cedear=usd_por_cedear,
        cantidad_acciones_reales=underlying_shares(ticker, cantidad),
        precio_accion_usd=precio_accion_usd,
    )


def compute_variation(
    precio_compra_ars: Decimal,
    precio_actual_ars: Decimal,
    usd_historico: Decimal,
    usd_actual: Decimal,
) -> Variation:
    """
    variacion_ars = (actual - compra) / compra * 100
    variacion_usd = (actual/usd_actual - compra/usd_historico) / (compra/usd_historico) * 100
    Con precio de compra o tipos de cambio no positivos devuelve 0 / 0.
    """
    if precio_compra_ars <= _ZERO or usd_historico <= _ZERO or usd_actual <= _ZERO:
        return Variation(variacion_ars=_ZERO, variacion_usd=_ZERO)

    variacion_ars = (precio_actual_ars - precio_compra_ars) / precio_compra_ars * _HUNDRED
    compra_usd = precio_compra_ars / usd_historico
    actual_usd = precio_actual_ars / usd_actual
    variacion_usd = (actual_usd - compra_usd) / compra_usd * _HUNDRED

    return Variation(
        variacion_ars=_q(variacion_ars, PCT_PRECISION),
        variacion_usd=_q(variacion_usd, PCT_PRECISION),
    )


def compute_positions(
    transactions: list["Transaction"],
    prices: dict[str, "CurrentPrice"],
    as_of: date | None = None,
    default_usd_rate: Decimal = DEFAULT_USD_RATE,
) -> list[Position]:
    """
    Pliega las transacciones (orden de inserción) en posiciones netas por ticker.

    Compra: suma cantidad y totales; actualiza fecha promedio y tipo de cambio
            histórico promedio con peso = cantidad / cantidad_total_tras_sumar.
    Venta:  resta cantidad y los totales de la PROPIA venta del pool de costo.

    Solo se emiten tickers con cantidad neta > 0, ordenados por valor_actual_ars desc.
    Sin precio actual para el ticker → valor 0 y variaciones 0.
    """
    as_of = as_of or date.today()
    running: dict[str, _RunningPosition] = {}

    for tx in transactions:
        state = running.setdefault(tx.ticker, _RunningPosition())
        if tx.tipo == TIPO_COMPRA:
            state.cantidad += tx.cantidad
            state.costo_total_ars += tx.total_ars
            state.costo_total_usd += tx.total_usd
            # cantidad <= 0 tras sumar solo ocurre con ventas en exceso previas
            weight = (
                Decimal(tx.cantidad) / Decimal(state.cantidad)
                if state.cantidad > 0
                else Decimal("1")
            )
            state.fecha_ordinal += (Decimal(tx.fecha.toordinal()) - state.fecha_ordinal) * weight
            state.usd_historico += (tx.usd_rate_historico - state.usd_historico) * weight
        else:
            state.cantidad -= tx.cantidad
            state.costo_total_ars -= tx.total_ars
            state.costo_total_usd -= tx.total_usd

    positions: list[Position] = []
    for ticker, state in running.items():
        if state.cantidad <= 0:
            continue

        price = prices.get(ticker)
        precio_promedio_ars = _q(state.costo_total_ars / state.cantidad)
        precio_promedio_usd = _q(state.costo_total_usd / state.cantidad)
        usd_historico = _q(state.usd_historico)
        fecha_promedio = date.fromordinal(int(_q(state.fecha_ordinal, Decimal("1"))))

        if price is not None:
            usd_actual = price.usd_rate if price.usd_rate else default_usd_rate
            valor_actual_ars = _q(price.precio_ars * state.cantidad)
            valor_actual_usd = _q(valor_actual_ars / usd_actual)
            variation = compute_variation(
                precio_promedio_ars, price.precio_ars, usd_historico, usd_actual
            )
        else:
            valor_actual_ars = _ZERO
            valor_actual_usd = _ZERO
            variation = Variation(variacion_ars=_ZERO, variacion_usd=_ZERO)

        positions.append(
            Position(
                ticker=ticker,
                cantidad=state.cantidad,
                cantidad_acciones_reales=underlying_shares(ticker, state.cantidad),
                precio_promedio_ars=precio_promedio_ars,
                precio_promedio_usd=precio_promedio_usd,
                costo_total_ars=_q(state.costo_total_ars),
                costo_total_usd=_q(state.costo_total_usd),
                valor_actual_ars=valor_actual_ars,
                valor_actual_usd=valor_actual_usd,
                ganancia_no_realizada_ars=_q(valor_actual_ars - state.costo_total_ars),
                ganancia_no_realizada_usd=_q(valor_actual_usd - state.costo_total_usd),
                porcentaje_cartera=_ZERO,  # se rellena abajo
                fecha_promedio_compra=fecha_promedio,
                usd_historico_promedio=usd_historico,
                dias_tenencia_promedio=(as_of - fecha_promedio).days,
                variacion_ars=variation.variacion_ars,
                variacion_usd=variation.variacion_usd,
            )
        )

    # porcentaje_cartera una vez que tenemos el total
    total_ars = sum((p.valor_actual_ars for p in positions), _ZERO)
    if total_ars > _ZERO:
        for p in positions:
            p.porcentaje_cartera = _q(p.valor_actual_ars / total_ars * _HUNDRED, PCT_PRECISION)

    return sorted(positions, key=lambda p: p.valor_actual_ars, reverse=True)


def compute_closed_operations(transactions: list["Transaction"]) -> list[OperacionCerrada]:
    """
    Matching FIFO por ticker. Cada venta consume los lotes de compra más antiguos;
    cada match (venta × lote) emite una OperacionCerrada.

    ganancia_ars = (venta.precio_ars - lote.precio_ars) * cantidad_matcheada
    ganancia_usd = (venta.total_usd/venta.cantidad - lote.total_usd/lote.cantidad_original)
                   * cantidad_matcheada

    Si una venta supera los lotes disponibles se ignora el exceso (se loguea).
    """
    by_ticker: dict[str, list[Transaction]] = {}
    for tx in transactions:
        by_ticker.setdefault(tx.ticker, []).append(tx)

    operaciones: list[OperacionCerrada] = []

    for ticker, txns in by_ticker.items():
        lots: deque[_Lot] = deque()

        # sorted() es estable: mismo día respeta el orden de inserción
        for tx in sorted(txns, key=lambda t: t.fecha):
            if tx.tipo == TIPO_COMPRA:
                lots.append(
                    _Lot(
                        restante=tx.cantidad,
                        precio_ars=tx.precio_ars,
                        total_usd=tx.total_usd,
                        cantidad_original=tx.cantidad,
                        fecha=tx.fecha,
                    )
                )
                continue

            restante_venta = tx.cantidad
            usd_unitario_venta = tx.total_usd / tx.cantidad

            while restante_venta > 0 and lots:
                lot = lots[0]
                matched = min(restante_venta, lot.restante)
                usd_unitario_compra = lot.total_usd / lot.cantidad_original

                operaciones.append(
                    OperacionCerrada(
                        ticker=ticker,
                        fecha_compra=lot.fecha,
                        fecha_venta=tx.fecha,
                        cantidad=matched,
                        precio_compra_ars=lot.precio_ars,
                        precio_venta_ars=tx.precio_ars,
                        ganancia_ars=_q((tx.precio_ars - lot.precio_ars) * matched),
                        ganancia_usd=_q((usd_unitario_venta - usd_unitario_compra) * matched),
                        dias_tenencia=(tx.fecha - lot.fecha).days,
                    )
                )

                lot.restante -= matched
                restante_venta -= matched
                if lot.restante == 0:
                    lots.popleft()

            if restante_venta > 0:
                logger.warning(
                    "fifo.unmatched_sell",
                    ticker=ticker,
                    fecha=tx.fecha.isoformat(),
                    cantidad_sin_match=restante_venta,
                )

    return operaciones


def compute_realized_gains(transactions: list["Transaction"]) -> RealizedGains:
    """Ganancia realizada total (ARS y USD) = suma sobre las operaciones cerradas FIFO."""
    operaciones = compute_closed_operations(transactions)
    return RealizedGains(
        ars=_q(sum((op.ganancia_ars for op in operaciones), _ZERO)),
        usd=_q(sum((op.ganancia_usd for op in operaciones), _ZERO)),
        operaciones=operaciones,
    )


def compute_portfolio_summary(
    transactions: list["Transaction"],
    prices: dict[str, "CurrentPrice"],
    as_of: date | None = None,
    default_usd_rate: Decimal = DEFAULT_USD_RATE,
) -> PortfolioSummary | None:
    """
    Resumen completo: posiciones + ganancias realizadas + totales.
    None si no hay transacciones.
    usd_rate_actual: tipo de cambio de la primera entrada del mapa de precios,
    o default_usd_rate si el mapa está vacío.
    """
    if not transactions:
        return None

    positions = compute_positions(transactions, prices, as_of=as_of, default_usd_rate=default_usd_rate)
    realized = compute_realized_gains(transactions)

    first_price = next(iter(prices.values()), None)
    usd_rate_actual = (
        first_price.usd_rate if first_price is not None and first_price.usd_rate else default_usd_rate
    )

    return PortfolioSummary(
        valor_total_ars=_q(sum((p.valor_actual_ars for p in positions), _ZERO)),
        valor_total_usd=_q(sum((p.valor_actual_usd for p in positions), _ZERO)),
        ganancia_total_no_realizada_ars=_q(
            sum((p.ganancia_no_realizada_ars for p in positions), _ZERO)
        ),
        ganancia_total_no_realizada_usd=_q(
            sum((p.ganancia_no_realizada_usd for p in positions), _ZERO)
        ),
        ganancia_total_realizada_ars=realized.ars,
        ganancia_total_realizada_usd=realized.usd,
        usd_rate_actual=usd_rate_actual,
        posiciones=positions,
        operaciones_cerradas=realized.operaciones,
    )


def open_quantity(
    transactions: list["Transaction"],
    ticker: str,
    as_of: date | None = None,
) -> int:
    """Cantidad neta abierta de un ticker, opcionalmente hasta una fecha (inclusive)."""
    total = 0
    for tx in transactions:
        if tx.ticker != ticker or (as_of is not None and tx.fecha > as_of):
            continue
        total += tx.cantidad if tx.tipo == TIPO_COMPRA else -tx.cantidad
    return total


def check_no_oversell(transactions: list["Transaction"]) -> None:
    """
    Recorre cada ticker en orden de fecha y lanza OverSellError si la
    cantidad abierta llega a ser negativa en algún punto.
    Mismo orden que el matching FIFO, así ninguna venta queda sin lote.
    """
    by_ticker: dict[str, list[Transaction]] = {}
    for tx in transactions:
        by_ticker.setdefault(tx.ticker, []).append(tx)

    for ticker, txns in by_ticker.items():
        abierta = 0
        for tx in sorted(txns, key=lambda t: t.fecha):
            abierta += tx.cantidad if tx.tipo == TIPO_COMPRA else -tx.cantidad
            if abierta < 0:
                raise OverSellError(ticker=ticker, fecha=tx.fecha, faltante=-abierta)


# ---------------------------------------------------------------------------
# Servicio con acceso a base de datos
# ---------------------------------------------------------------------------


class PortfolioService:
    """
    Transacciones y precios de un usuario leídos de la BD, más el resumen
    calculado con las funciones puras de arriba (recalculado completo en cada
    llamada, sin estado incremental).
    """

    def __init__(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        default_usd_rate: Decimal = DEFAULT_USD_RATE,
    ) -> None:
        self.db = db
        self.user_id = user_id
        self.default_usd_rate = default_usd_rate

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    async def list_transactions(self, ticker: str | None = None) -> list[Transaction]:
        """Transacciones del usuario en orden de inserción."""
        q = select(Transaction).where(Transaction.user_id == self.user_id)
        if ticker:
            q = q.where(Transaction.ticker == ticker.upper())
        q = q.order_by(Transaction.created_at, Transaction.id)
        result = await self.db.execute(q)
        return list(result.scalars().all())

    async def get_current_prices(self) -> dict[str, CurrentPrice]:
        """
        Mapa ticker → CurrentPrice. El más recientemente actualizado va primero,
        así usd_rate_actual del resumen es el tipo de cambio más fresco.
        """
        q = select(CurrentPrice).order_by(CurrentPrice.updated_at.desc(), CurrentPrice.ticker)
        result = await self.db.execute(q)
        return {p.ticker: p for p in result.scalars().all()}

    # -----------------------------------------------------------------------
    # Mutaciones
    # -----------------------------------------------------------------------

    async def add_transaction(
        self,
        fecha: date,
        tipo: str,
        ticker: str,
        precio_ars: Decimal,
        cantidad: int,
        usd_rate_historico: Decimal,
        categoria: str | None = None,
    ) -> Transaction:
        """
        Valida, calcula totales y campos derivados, y persiste la transacción.
        Una venta que deje la tenencia negativa se rechaza con OverSellError.
        """
        if tipo not in (TIPO_COMPRA, TIPO_VENTA):
            raise InvalidTransactionError(f"Tipo de transacción inválido: {tipo}")

        ticker = ticker.strip().upper()
        total_ars, total_usd = compute_totals(precio_ars, cantidad, usd_rate_historico)
        derived = enhance_transaction(ticker, cantidad, total_usd)

        tx = Transaction(
            user_id=self.user_id,
            fecha=fecha,
            tipo=tipo,
            ticker=ticker,
            precio_ars=precio_ars,
            cantidad=cantidad,
            usd_rate_historico=usd_rate_historico,
            total_ars=total_ars,
            total_usd=total_usd,
            usd_por_cedear=derived.usd_por_cedear,
            cantidad_acciones_reales=derived.cantidad_acciones_reales,
            precio_accion_usd=derived.precio_accion_usd,
            dias_tenencia=0,
            categoria=categoria or DEFAULT_CATEGORIA,
        )

        if tipo == TIPO_VENTA:
            existing = await self.list_transactions(ticker=ticker)
            disponible = open_quantity(existing, ticker, as_of=fecha)
            if cantidad > disponible:
                raise OverSellError(ticker=ticker, fecha=fecha, faltante=cantidad - disponible)
            # ventas posteriores ya cargadas tampoco pueden quedar sin cobertura
            check_no_oversell(existing + [tx])
            # días desde la fecha promedio de compra de lo que se está vendiendo
            previas = [t for t in existing if t.fecha <= fecha]
            positions = compute_positions(previas, {}, as_of=fecha)
            if positions:
                tx.dias_tenencia = positions[0].dias_tenencia_promedio

        self.db.add(tx)
        await self.db.commit()
        await self.db.refresh(tx)

        logger.info(
            "transaction.created",
            transaction_id=str(tx.id),
            tipo=tipo,
            ticker=ticker,
            cantidad=cantidad,
        )
        return tx

    async def delete_transaction(self, transaction_id: uuid.UUID) -> bool:
        """
        Borra una transacción del usuario. False si no existe.
        Borrar una compra que deja ventas posteriores sin cobertura lanza OverSellError.
        """
        result = await self.db.execute(
            select(Transaction).where(
                Transaction.id == transaction_id,
                Transaction.user_id == self.user_id,
            )
        )
        tx = result.scalar_one_or_none()
        if tx is None:
            return False

        if tx.tipo == TIPO_COMPRA:
            remaining = [t for t in await self.list_transactions(ticker=tx.ticker) if t.id != tx.id]
            check_no_oversell(remaining)

        await self.db.execute(
            delete(Transaction).where(
                Transaction.id == transaction_id,
                Transaction.user_id == self.user_id,
            )
        )
        await self.db.commit()
        logger.info("transaction.deleted", transaction_id=str(transaction_id), ticker=tx.ticker)
        return True

    # -----------------------------------------------------------------------
    # Cálculos
    # -----------------------------------------------------------------------

    async def calculate_summary(self, as_of: date | None = None) -> PortfolioSummary | None:
        transactions = await self.list_transactions()
        prices = await self.get_current_prices()
        return compute_portfolio_summary(
            transactions,
            prices,
            as_of=as_of,
            default_usd_rate=self.default_usd_rate,
        )

    async def calculate_positions(self, as_of: date | None = None) -> list[Position]:
        transactions = await self.list_transactions()
        prices = await self.get_current_prices()
        return compute_positions(
            transactions, prices, as_of=as_of, default_usd_rate=self.default_usd_rate
        )

    async def calculate_closed_operations(self) -> RealizedGains:
        return compute_realized_gains(await self.list_transactions())
