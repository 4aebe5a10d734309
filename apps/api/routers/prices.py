"""
Router: /api/v1/prices
GET /          → precios actuales por ticker (feed o carga manual)
PUT /{ticker}  → carga manual de precio ARS y tipo de cambio (last-write-wins)
"""

import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from core.dependencies import get_current_user_id, get_db
from core.responses import ok
from models.current_price import CurrentPrice
from services.price_service import PriceService

router = APIRouter()


class PriceUpdate(BaseModel):
    precio_ars: Decimal = Field(gt=0)
    usd_rate: Decimal = Field(gt=0)


@router.get("")
async def list_prices(
    db: AsyncSession = Depends(get_db),
    _user: uuid.UUID = Depends(get_current_user_id),
) -> dict:
    prices = await PriceService(db).list_prices()
    return ok(data=[_price_to_dict(p) for p in prices], meta={"count": len(prices)})


@router.put("/{ticker}")
async def update_price(
    ticker: str,
    body: PriceUpdate,
    db: AsyncSession = Depends(get_db),
    _user: uuid.UUID = Depends(get_current_user_id),
) -> dict:
    price = await PriceService(db).upsert_price(ticker, body.precio_ars, body.usd_rate)
    return ok(data=_price_to_dict(price))


def _price_to_dict(price: CurrentPrice) -> dict:
    return {
        "ticker": price.ticker,
        "precio_ars": str(price.precio_ars),
        "usd_rate": str(price.usd_rate),
        "updated_at": price.updated_at.isoformat() if price.updated_at else None,
    }
