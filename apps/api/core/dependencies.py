"""
Dependencias inyectables de FastAPI.
Uso: añadir como parámetro en la firma del endpoint con Depends().
"""

import uuid
from collections.abc import AsyncIterator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.database import session_scope
from core.security import verify_token
from services.optimizer_service import OptimizerService
from sync.yahoo_client import YahooChartClient

_bearer = HTTPBearer()


# ---------------------------------------------------------------------------
# Sesión de base de datos
# ---------------------------------------------------------------------------


async def get_db() -> AsyncIterator[AsyncSession]:
    """Proporciona una sesión SQLAlchemy async con rollback automático ante errores."""
    async with session_scope() as session:
        yield session


# ---------------------------------------------------------------------------
# Autenticación JWT
# ---------------------------------------------------------------------------


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer),
) -> uuid.UUID:
    """
    Valida el Bearer token JWT y devuelve el user_id dueño de los datos.
    Lanza 401 si el token es inválido o expirado.
    """
    try:
        return verify_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


# ---------------------------------------------------------------------------
# Optimizador
# ---------------------------------------------------------------------------


async def get_optimizer() -> AsyncIterator[OptimizerService]:
    """OptimizerService con un cliente Yahoo por request, cerrado al terminar."""
    async with YahooChartClient(
        base_url=settings.YAHOO_CHART_BASE_URL,
        timeout=settings.HISTORY_FETCH_TIMEOUT_SECONDS,
        max_retries=settings.HISTORY_FETCH_MAX_RETRIES,
    ) as client:
        yield OptimizerService(
            provider=client,
            num_portfolios=settings.OPTIMIZER_NUM_PORTFOLIOS,
            apply_risk_free_rate=settings.SHARPE_APPLY_RISK_FREE_RATE,
        )
