"""
Router: /api/v1/portfolio
GET /summary           → resumen completo (totales + posiciones + operaciones cerradas)
GET /positions         → posiciones abiertas con costo promedio y valor actual
GET /closed-operations → operaciones cerradas FIFO y ganancia realizada total

Todo se recalcula completo en cada request desde transacciones + precios.
"""

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.dependencies import get_current_user_id, get_db
from core.responses import ok, to_payload
from services.portfolio_service import PortfolioService

router = APIRouter()


def _service(db: AsyncSession, user_id: uuid.UUID) -> PortfolioService:
    return PortfolioService(db=db, user_id=user_id, default_usd_rate=settings.DEFAULT_USD_RATE)


@router.get("/summary")
async def get_summary(
    as_of: date | None = Query(None, description="Fecha de referencia para días de tenencia"),
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> dict:
    """
    Resumen del portafolio. data=null si el usuario no tiene transacciones
    (el cliente muestra el estado vacío).
    """
    summary = await _service(db, user_id).calculate_summary(as_of=as_of)
    if summary is None:
        return ok(data=None, meta={"message": "Sin transacciones registradas"})

    return ok(
        data=to_payload(summary),
        meta={
            "positions_count": len(summary.posiciones),
            "closed_operations_count": len(summary.operaciones_cerradas),
        },
    )


@router.get("/positions")
async def get_positions(
    as_of: date | None = Query(None),
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> dict:
    """Posiciones con cantidad neta > 0, ordenadas por valor ARS descendente."""
    positions = await _service(db, user_id).calculate_positions(as_of=as_of)
    return ok(data=to_payload(positions), meta={"positions_count": len(positions)})


@router.get("/closed-operations")
async def get_closed_operations(
    ticker: str | None = Query(None, description="Filtro por ticker, e.g. AAPL"),
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> dict:
    """Una fila por match FIFO (venta × lote de compra)."""
    realized = await _service(db, user_id).calculate_closed_operations()
    operaciones = realized.operaciones
    if ticker:
        operaciones = [op for op in operaciones if op.ticker == ticker.strip().upper()]

    return ok(
        data=to_payload(operaciones),
        meta={
            "ganancia_total_realizada_ars": str(realized.ars),
            "ganancia_total_realizada_usd": str(realized.usd),
            "operations_count": len(operaciones),
        },
    )
