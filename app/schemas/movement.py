from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union


class MovementCreate(BaseModel):
    """Esquema para registrar un movimiento.
    - `type` se valida en el servicio para devolver un error tipado.
    - `quantity` acepta número o texto (con coma o punto decimal)."""

    product_id: int = Field(..., gt=0)
    type: str = Field(..., description="'entrada', 'salida' o 'ajuste'")
    quantity: Union[int, float, str] = Field(
        ..., description="Cantidad; en los ajustes el signo indica si suma o resta"
    )
    notes: Optional[str] = Field(None, max_length=500)


class MovementPreviewRequest(BaseModel):
    product_id: int = Field(..., gt=0)
    type: str
    quantity: Union[int, float, str]


class MovementPreviewResponse(BaseModel):
    product_id: int
    current_stock: Decimal
    delta: Optional[Decimal] = None
    resulting_stock: Optional[Decimal] = None
    valid: bool
    error: Optional[str] = None


class MovementResponse(BaseModel):
    """Esquema para responder con los datos de un movimiento."""

    id: int
    product_id: int
    type: str
    quantity: Decimal
    quantity_display: str
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_by_name: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class MovementWithProductResponse(MovementResponse):
    product_name: str
    product_code: str
    product_unit: str


class PaginatedMovementsResponse(BaseModel):
    data: List[MovementResponse]
    total: int
    limit: Optional[int]
    offset: int


class PaginatedMovementsWithProductResponse(BaseModel):
    data: List[MovementWithProductResponse]
    total: int
    limit: int
    offset: int
