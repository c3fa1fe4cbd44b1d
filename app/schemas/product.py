from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, field_validator
from typing import List, Literal, Optional, Union


class ProductBase(BaseModel):
    """
    Esquema base para productos.
    - `code`: se guarda y se muestra siempre en mayúsculas.
    - `unit`: `unidad` (cantidades enteras) o `kg` (hasta 3 decimales).
    """

    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1, max_length=30)
    description: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = Field(None, max_length=50)
    sale_price: Decimal = Field(0, ge=0, max_digits=12, decimal_places=2)
    cost_price: Decimal = Field(0, ge=0, max_digits=12, decimal_places=2)
    unit: Literal["unidad", "kg"] = "unidad"
    min_stock: Decimal = Field(0, ge=0, max_digits=12, decimal_places=3)

    @field_validator("code")
    @classmethod
    def code_upper(cls, value: str) -> str:
        return value.strip().upper()


class ProductCreate(ProductBase):
    """
    Esquema para la creación de un producto.
    - `stock_inicial` se registra como una entrada, nunca se escribe directo.
    """

    stock_inicial: Union[int, float, str] = Field(
        0, description="Stock inicial, se registra como movimiento de entrada"
    )


class ProductUpdate(BaseModel):
    """
    Esquema para la actualización de un producto.
    - No acepta `stock`: el stock solo cambia con movimientos.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    code: Optional[str] = Field(None, min_length=1, max_length=30)
    description: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = Field(None, max_length=50)
    sale_price: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    cost_price: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    unit: Optional[Literal["unidad", "kg"]] = None
    min_stock: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=3)
    active: Optional[bool] = None

    @field_validator("code")
    @classmethod
    def code_upper(cls, value: Optional[str]) -> Optional[str]:
        return value.strip().upper() if value else value

    class Config:
        extra = "forbid"


class ProductResponse(ProductBase):
    """
    Esquema para respuestas de la API.
    - `stock` es el stock derivado de los movimientos.
    - `alert_type` es `out`, `low`, `near` o None.
    """

    id: int
    stock: Decimal
    stock_display: str
    alert_type: Optional[str] = None
    active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class PaginatedProductResponse(BaseModel):
    data: List[ProductResponse]
    total: int
    limit: int
    offset: int


class ReconcileResponse(BaseModel):
    product_id: int
    cached: Decimal
    replayed: Decimal
    drift: Decimal
