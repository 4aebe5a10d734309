"""
Modelo: transactions: compras y ventas de CEDEARs de cada usuario.
Inmutable una vez creada (solo se permite borrar).
"""

import uuid
from datetime import date, datetime
from decimal import Decimal

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from models.base import ARS_NUMERIC, USD_NUMERIC, Base

TRANSACTION_TYPES = ("compra", "venta")

TRANSACTION_CATEGORIES = (
    "Jubilación",
    "Viaje",
    "Ahorro",
    "Emergencias",
    "Educación",
    "Inversión",
    "Casa",
    "Auto",
)


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        sa.Index("ix_transactions_user_created", "user_id", "created_at"),
        sa.Index("ix_transactions_user_ticker_fecha", "user_id", "ticker", "fecha"),
        sa.CheckConstraint("cantidad > 0", name="ck_transactions_cantidad_positiva"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # El usuario vive en el proveedor de auth externo: sin FK local
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    fecha: Mapped[date] = mapped_column(sa.Date, nullable=False)
    tipo: Mapped[str] = mapped_column(
        sa.Enum(*TRANSACTION_TYPES, name="transaction_tipo"),
        nullable=False,
    )
    ticker: Mapped[str] = mapped_column(sa.String(20), nullable=False)
    precio_ars: Mapped[Decimal] = mapped_column(ARS_NUMERIC, nullable=False)
    cantidad: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    usd_rate_historico: Mapped[Decimal] = mapped_column(ARS_NUMERIC, nullable=False)
    total_ars: Mapped[Decimal] = mapped_column(sa.NUMERIC(24, 4), nullable=False)
    total_usd: Mapped[Decimal] = mapped_column(USD_NUMERIC, nullable=False)

    # Campos derivados (enhance_transaction)
    usd_por_cedear: Mapped[Decimal] = mapped_column(USD_NUMERIC, nullable=False)
    cantidad_acciones_reales: Mapped[Decimal] = mapped_column(USD_NUMERIC, nullable=False)
    precio_accion_usd: Mapped[Decimal] = mapped_column(USD_NUMERIC, nullable=False)

    dias_tenencia: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    categoria: Mapped[str | None] = mapped_column(
        sa.Enum(*TRANSACTION_CATEGORIES, name="transaction_category"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )
