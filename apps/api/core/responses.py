"""
Helpers para la estructura de respuesta estándar { data, error, meta }.
Todos los endpoints de la API deben usar estas funciones para garantizar
coherencia en el formato de respuesta.

Montos Decimal viajan como string (sin pérdida de precisión); estadísticas
float como número.
"""

import dataclasses
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import numpy as np


def ok(data: Any = None, meta: dict | None = None) -> dict:
    """Respuesta exitosa."""
    return {"data": data, "error": None, "meta": meta or {}}


def err(message: str, meta: dict | None = None) -> dict:
    """Respuesta de error (para exception handlers globales)."""
    return {"data": None, "error": message, "meta": meta or {}}


def to_payload(value: Any) -> Any:
    """
    Convierte dataclasses (anidadas), listas y dicts a tipos JSON:
    Decimal → str, date/datetime → ISO 8601, UUID → str, numpy → nativo.
    """
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_payload(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {str(k): to_payload(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_payload(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    return value
