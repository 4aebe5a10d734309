"""create transactions and current_prices tables

Revision ID: 001_create_cedear_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import ENUM as PgEnum

revision: str = "001_create_cedear_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

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

_tipo = PgEnum(*TRANSACTION_TYPES, name="transaction_tipo", create_type=False)
_categoria = PgEnum(*TRANSACTION_CATEGORIES, name="transaction_category", create_type=False)


def _create_enum(name: str, values: tuple[str, ...]) -> None:
    # Idempotente: un re-run no falla si el tipo ya existe
    joined = ", ".join(f"'{v}'" for v in values)
    op.execute(
        f"DO $$ BEGIN "
        f"CREATE TYPE {name} AS ENUM ({joined}); "
        f"EXCEPTION WHEN duplicate_object THEN NULL; "
        f"END $$;"
    )


def upgrade() -> None:
    _create_enum("transaction_tipo", TRANSACTION_TYPES)
    _create_enum("transaction_category", TRANSACTION_CATEGORIES)

    op.create_table(
        "transactions",
        sa.Column("id", sa.UUID(), nullable=False),
        # user_id del proveedor de auth externo, sin FK local
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("fecha", sa.Date(), nullable=False),
        sa.Column("tipo", _tipo, nullable=False),
        sa.Column("ticker", sa.String(20), nullable=False),
        # NUMERIC(20,4): montos ARS; NUMERIC(24,8): montos USD y acciones subyacentes
        sa.Column("precio_ars", sa.NUMERIC(20, 4), nullable=False),
        sa.Column("cantidad", sa.Integer(), nullable=False),
        sa.Column("usd_rate_historico", sa.NUMERIC(20, 4), nullable=False),
        sa.Column("total_ars", sa.NUMERIC(24, 4), nullable=False),
        sa.Column("total_usd", sa.NUMERIC(24, 8), nullable=False),
        sa.Column("usd_por_cedear", sa.NUMERIC(24, 8), nullable=False),
        sa.Column("cantidad_acciones_reales", sa.NUMERIC(24, 8), nullable=False),
        sa.Column("precio_accion_usd", sa.NUMERIC(24, 8), nullable=False),
        sa.Column("dias_tenencia", sa.Integer(), nullable=True),
        sa.Column("categoria", _categoria, nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.CheckConstraint("cantidad > 0", name="ck_transactions_cantidad_positiva"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_transactions_user_created", "transactions", ["user_id", "created_at"])
    op.create_index(
        "ix_transactions_user_ticker_fecha",
        "transactions",
        ["user_id", "ticker", "fecha"],
    )

    op.create_table(
        "current_prices",
        sa.Column("ticker", sa.String(20), nullable=False),
        sa.Column("precio_ars", sa.NUMERIC(20, 4), nullable=False),
        sa.Column("usd_rate", sa.NUMERIC(20, 4), nullable=False),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("ticker"),
    )


def downgrade() -> None:
    op.drop_table("current_prices")
    op.drop_index("ix_transactions_user_ticker_fecha", table_name="transactions")
    op.drop_index("ix_transactions_user_created", table_name="transactions")
    op.drop_table("transactions")
    op.execute("DROP TYPE IF EXISTS transaction_category;")
    op.execute("DROP TYPE IF EXISTS transaction_tipo;")
