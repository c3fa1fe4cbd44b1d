from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlmodel import SQLModel, Field


class Product(SQLModel, table=True):
    __tablename__ = "producto"

    id: int = Field(default=None, primary_key=True, nullable=False)
    name: str = Field(nullable=False)
    code: str = Field(unique=True, index=True, nullable=False)
    description: Optional[str] = Field(default=None)
    category: Optional[str] = Field(default=None, index=True)
    sale_price: Decimal = Field(default=0, max_digits=12, decimal_places=2)
    cost_price: Decimal = Field(default=0, max_digits=12, decimal_places=2)
    unit: str = Field(
        default="unidad", nullable=False
    )  # "unidad" o "kg", la restricción la ponemos en el esquema
    min_stock: Decimal = Field(default=0, max_digits=12, decimal_places=3)
    # Caché del ledger: solo lo escribe app.services.ledger
    stock: Decimal = Field(default=0, max_digits=12, decimal_places=3)
    active: bool = Field(default=True, nullable=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now())
