"""
Modelo: current_prices: último precio conocido por ticker (last-write-wins).
Lo escriben la actualización manual (PUT /prices) y el scheduler del feed.
"""

from datetime import datetime
from decimal import Decimal

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from models.base import ARS_NUMERIC, Base


class CurrentPrice(Base):
    __tablename__ = "current_prices"

    ticker: Mapped[str] = mapped_column(sa.String(20), primary_key=True)
    precio_ars: Mapped[Decimal] = mapped_column(ARS_NUMERIC, nullable=False)
    usd_rate: Mapped[Decimal] = mapped_column(ARS_NUMERIC, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        sa.TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
        onupdate=sa.func.now(),
    )
