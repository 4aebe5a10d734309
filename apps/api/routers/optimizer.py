"""
Router: /api/v1/optimizer
POST / → métricas de riesgo/retorno de una cartera; en modo optimize agrega
         Max Sharpe, Min Volatilidad, cartera objetivo y frontera eficiente.

Cualquier falla en las series obligatorias aborta el pedido completo (422).
"""

import uuid
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from core.dependencies import get_current_user_id, get_optimizer
from core.responses import ok, to_payload
from services.optimizer_service import OptimizerError, OptimizerRequest, OptimizerService

router = APIRouter()


class OptimizerBody(BaseModel):
    tickers: list[str] = Field(min_length=1, max_length=30)
    weights: list[float]
    benchmark: str = "SPY"
    years: float = Field(5, gt=0, le=30)
    risk_free_rate: float = Field(0.02, ge=0, le=1)
    min_weight: float = Field(0.0, ge=0, le=1)
    target_return: float | None = None
    mode: Literal["analyze", "optimize"] = "analyze"
    num_portfolios: int | None = Field(None, ge=100, le=50000)
    seed: int | None = None


@router.post("")
async def run_optimizer(
    body: OptimizerBody,
    optimizer: OptimizerService = Depends(get_optimizer),
    _user: uuid.UUID = Depends(get_current_user_id),
) -> dict:
    try:
        result = await optimizer.run(OptimizerRequest(**body.model_dump()))
    except OptimizerError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    return ok(
        data=to_payload(result),
        meta={
            "mode": body.mode,
            "trading_days": result.trading_days,
            "risk_free_rate_applied": result.risk_free_rate_applied,
        },
    )
