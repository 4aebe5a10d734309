"""
Base declarativa de SQLAlchemy. Todos los modelos heredan de aquí.
"""

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase

# NUMERIC(20,4) para precios en ARS y tipos de cambio
ARS_NUMERIC = sa.NUMERIC(20, 4)
# NUMERIC(24,8) para montos USD y acciones reales fraccionarias
USD_NUMERIC = sa.NUMERIC(24, 8)


class Base(DeclarativeBase):
    pass
