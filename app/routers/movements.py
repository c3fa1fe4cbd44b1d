from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session
from sqlalchemy.exc import SQLAlchemyError
from app.models.database import get_db
from app.models.product import Product
from app.models.user import User
from app.routers.auth import get_current_user
from app.routers.products import movement_to_response
from app.routers.websocket import notify_from_thread
from app.schemas.movement import (
    MovementCreate,
    MovementPreviewRequest,
    MovementPreviewResponse,
    MovementResponse,
    MovementWithProductResponse,
    PaginatedMovementsWithProductResponse,
)
from app.services import ledger, movements
from app.services.errors import ProductNotFound, StockError


router = APIRouter(prefix="/movimientos", tags=["Movimientos"])


@router.get("/", response_model=PaginatedMovementsWithProductResponse)
def get_movements(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    limit: int = Query(10, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    search: Optional[str] = Query(None, description="Nombre o código del producto"),
    type: Optional[str] = Query(None, description="entrada, salida o ajuste"),
):
    """Lista todos los movimientos de stock, del más nuevo al más viejo."""
    try:
        rows, total_records = ledger.all_movements(
            db, search=search, movement_type=type or None, limit=limit, offset=offset
        )
    except StockError as e:
        raise e.to_http()
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error de conexión con la base de datos",
        )

    return {
        "data": [
            MovementWithProductResponse(
                **movement_to_response(movement, user_name, product_unit),
                product_name=product_name,
                product_code=product_code,
                product_unit=product_unit,
            )
            for movement, product_name, product_code, product_unit, user_name in rows
        ],
        "total": total_records,
        "limit": limit,
        "offset": offset,
    }


@router.post("/", response_model=MovementResponse, status_code=status.HTTP_201_CREATED)
def create_movement(
    movement_data: MovementCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Registra un movimiento de stock a nombre del usuario autenticado.

    - **entrada** suma la cantidad.
    - **salida** resta la cantidad y no puede superar el stock actual.
    - **ajuste** suma o resta según el signo, sin dejar el stock en negativo.
    """
    try:
        movement = movements.submit_movement(
            db,
            movement_data.product_id,
            movement_data.type,
            movement_data.quantity,
            notes=movement_data.notes,
            user_id=current_user.id,
        )
        unit = db.get(Product, movement.product_id).unit
    except StockError as e:
        raise e.to_http()

    notify_from_thread(
        f"Nuevo movimiento registrado: {movement.id} ({movement.type}) "
        f"producto {movement.product_id}"
    )

    return movement_to_response(movement, current_user.name, unit)


@router.post("/preview", response_model=MovementPreviewResponse)
def preview_movement(
    preview_data: MovementPreviewRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Simula un movimiento sin registrarlo: delta, stock resultante y si es válido.
    El registro real vuelve a validar contra el stock del momento."""
    try:
        product = db.get(Product, preview_data.product_id)
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error de conexión con la base de datos",
        )

    if not product or not product.active:
        raise ProductNotFound().to_http()

    result = movements.preview(product, preview_data.type, preview_data.quantity)

    return {
        "product_id": product.id,
        "current_stock": ledger.as_decimal(product.stock),
        "delta": result.delta,
        "resulting_stock": result.resulting_stock,
        "valid": result.valid,
        "error": result.error,
    }
