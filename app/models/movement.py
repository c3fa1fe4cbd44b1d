from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlmodel import SQLModel, Field


class StockMovement(SQLModel, table=True):
    """Movimiento de stock. Nunca se edita ni se borra."""

    __tablename__ = "movimientos_stock"

    id: int = Field(default=None, primary_key=True, nullable=False)
    product_id: int = Field(foreign_key="producto.id", index=True, nullable=False)
    type: str = Field(
        nullable=False
    )  # Tipo como `str`, la restricción la ponemos en el esquema
    quantity: Decimal = Field(
        max_digits=12, decimal_places=3
    )  # Delta con signo
    notes: Optional[str] = Field(default=None)
    created_by: Optional[int] = Field(
        default=None, foreign_key="usuario.id"
    )  # None para movimientos generados por el sistema
    created_at: datetime = Field(default_factory=lambda: datetime.now())
