"""
Router: /api/v1/cedears
GET /          → tabla de ratios CEDEAR (opcionalmente filtrada por sector)
GET /{ticker}  → ficha de un CEDEAR
"""

from fastapi import APIRouter, HTTPException, Query, status

from core.responses import ok, to_payload
from services.cedear_ratios import CEDEAR_RATIOS, get_cedear_info

router = APIRouter()


@router.get("")
async def list_cedears(sector: str | None = Query(None, description="e.g. Technology")) -> dict:
    infos = sorted(CEDEAR_RATIOS.values(), key=lambda i: i.ticker)
    if sector:
        infos = [i for i in infos if i.sector.lower() == sector.strip().lower()]
    return ok(data=to_payload(infos), meta={"count": len(infos)})


@router.get("/{ticker}")
async def get_cedear(ticker: str) -> dict:
    info = get_cedear_info(ticker)
    if info is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"CEDEAR desconocido: {ticker}")
    return ok(data=to_payload(info))
