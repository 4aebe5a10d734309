"""
Router: /api/v1/transactions
GET    /      → historial del usuario (orden de inserción) con filtros
POST   /      → alta de compra/venta con campos derivados; rechaza sobreventas
DELETE /{id}  → baja de una transacción del usuario
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from core.dependencies import get_current_user_id, get_db
from core.responses import ok
from models.transaction import TRANSACTION_CATEGORIES, TRANSACTION_TYPES, Transaction
from services.portfolio_service import InvalidTransactionError, PortfolioService

router = APIRouter()


class TransactionCreate(BaseModel):
    fecha: date
    tipo: Literal["compra", "venta"]
    ticker: str = Field(min_length=1, max_length=20)
    precio_ars: Decimal = Field(gt=0)
    cantidad: int = Field(gt=0)
    usd_rate_historico: Decimal = Field(gt=0)
    categoria: str | None = None

    @field_validator("ticker")
    @classmethod
    def normalize_ticker(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("El ticker no puede estar vacío")
        return v

    @field_validator("fecha")
    @classmethod
    def not_in_future(cls, v: date) -> date:
        if v > date.today():
            raise ValueError("La fecha no puede ser futura")
        return v

    @field_validator("categoria")
    @classmethod
    def valid_categoria(cls, v: str | None) -> str | None:
        if v is not None and v not in TRANSACTION_CATEGORIES:
            raise ValueError(f"Categoría inválida. Opciones: {', '.join(TRANSACTION_CATEGORIES)}")
        return v


@router.get("")
async def list_transactions(
    tipo: str | None = Query(None, description=f"Filtro por tipo: {TRANSACTION_TYPES}"),
    ticker: str | None = Query(None, description="Filtro por ticker, e.g. AAPL"),
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> dict:
    """Historial completo del usuario. meta incluye el total filtrado."""
    rows = await PortfolioService(db=db, user_id=user_id).list_transactions(ticker=ticker)
    if tipo:
        rows = [tx for tx in rows if tx.tipo == tipo]
    if from_date:
        rows = [tx for tx in rows if tx.fecha >= from_date]
    if to_date:
        rows = [tx for tx in rows if tx.fecha <= to_date]

    return ok(data=[_tx_to_dict(tx) for tx in rows], meta={"total": len(rows)})


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_transaction(
    body: TransactionCreate,
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> dict:
    service = PortfolioService(db=db, user_id=user_id)
    try:
        tx = await service.add_transaction(
            fecha=body.fecha,
            tipo=body.tipo,
            ticker=body.ticker,
            precio_ars=body.precio_ars,
            cantidad=body.cantidad,
            usd_rate_historico=body.usd_rate_historico,
            categoria=body.categoria,
        )
    except InvalidTransactionError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    return ok(data=_tx_to_dict(tx))


@router.delete("/{transaction_id}")
async def delete_transaction(
    transaction_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> dict:
    service = PortfolioService(db=db, user_id=user_id)
    try:
        deleted = await service.delete_transaction(transaction_id)
    except InvalidTransactionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transacción no encontrada")
    return ok(data={"id": str(transaction_id), "deleted": True})


def _tx_to_dict(tx: Transaction) -> dict:
    return {
        "id": str(tx.id),
        "fecha": tx.fecha.isoformat(),
        "tipo": tx.tipo,
        "ticker": tx.ticker,
        "precio_ars": str(tx.precio_ars),
        "cantidad": tx.cantidad,
        "usd_rate_historico": str(tx.usd_rate_historico),
        "total_ars": str(tx.total_ars),
        "total_usd": str(tx.total_usd),
        "usd_por_cedear": str(tx.usd_por_cedear),
        "cantidad_acciones_reales": str(tx.cantidad_acciones_reales),
        "precio_accion_usd": str(tx.precio_accion_usd),
        "dias_tenencia": tx.dias_tenencia,
        "categoria": tx.categoria,
        "created_at": tx.created_at.isoformat() if tx.created_at else None,
    }
