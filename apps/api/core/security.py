"""
Capa de seguridad: verificación de JWT HS256.

Los tokens los emite el proveedor de autenticación externo (login, registro e
invitaciones viven fuera de esta API); aquí solo se validan y se extrae el
user_id del claim "sub". create_access_token existe para scripts y tests.

NUNCA loguear ni exponer SECRET_KEY ni tokens completos.
"""

import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from core.config import settings

ALGORITHM = "HS256"


def create_access_token(user_id: uuid.UUID, expires_minutes: int | None = None) -> str:
    """Genera un JWT con sub=user_id y expiración configurable."""
    minutes = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    payload = {"sub": str(user_id), "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> uuid.UUID:
    """
    Valida el JWT y retorna el user_id (UUID del claim sub).
    Lanza ValueError si el token es inválido, expiró o el subject no es un UUID.
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[ALGORITHM],
            options={"verify_aud": False},
        )
    except JWTError as exc:
        raise ValueError(f"Token inválido: {exc}") from exc

    sub = payload.get("sub")
    if not sub:
        raise ValueError("Token sin subject")
    try:
        return uuid.UUID(str(sub))
    except ValueError as exc:
        raise ValueError("Token con subject inválido") from exc
