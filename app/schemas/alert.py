from typing import List
from pydantic import BaseModel
from app.schemas.product import ProductResponse


class AlertCounts(BaseModel):
    """Contadores por tipo; no dependen del filtro de tipo de alerta."""

    out: int = 0
    low: int = 0
    near: int = 0


class AlertProductResponse(ProductResponse):
    alert_type: str


class AlertSummaryResponse(BaseModel):
    counts: AlertCounts
    data: List[AlertProductResponse]
