"""
Modelos SQLAlchemy. Importar aquí para que Alembic los detecte en autogenerate.
"""

from models.current_price import CurrentPrice
from models.transaction import Transaction

__all__ = [
    "CurrentPrice",
    "Transaction",
]
