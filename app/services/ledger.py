"""
Ledger de movimientos de stock.

El stock de un producto es la suma de sus movimientos. `Product.stock` es una
caché de esa suma: solo se modifica aquí, en la misma transacción que inserta
el movimiento y con el lock del producto tomado por quien llama.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlmodel import Session, func, select

from app.models.movement import StockMovement
from app.models.product import Product
from app.models.user import User
from app.services.errors import (
    MovementValidationError,
    NegativeResultingStock,
    ProductNotFound,
)
from app.utils.quantity import KG_STEP
from app.utils.validation import like_pattern

logger = logging.getLogger(__name__)

MOVEMENT_TYPES = ("entrada", "salida", "ajuste")


def as_decimal(value) -> Decimal:
    """Normaliza lo que devuelve la base de datos (SQLite entrega floats)."""
    if value is None:
        return Decimal(0)
    return Decimal(str(value)).quantize(KG_STEP)


def current_stock(db: Session, product_id: int) -> Decimal:
    """Stock actual del producto según la caché."""
    stock = db.exec(select(Product.stock).where(Product.id == product_id)).first()
    if stock is None:
        raise ProductNotFound()
    return as_decimal(stock)


def replayed_stock(db: Session, product_id: int) -> Decimal:
    """Stock recalculado sumando todo el historial del producto."""
    total = db.exec(
        select(func.sum(StockMovement.quantity)).where(
            StockMovement.product_id == product_id
        )
    ).first()
    return as_decimal(total)


def load_for_update(db: Session, product_id: int) -> Optional[Product]:
    """Relee el producto bloqueando su fila (no-op en SQLite).

    `populate_existing` descarta la copia que la sesión pudiera tener en memoria.
    """
    statement = (
        select(Product)
        .where(Product.id == product_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return db.exec(statement).first()


def append(db: Session, product: Product, movement: StockMovement) -> StockMovement:
    """Inserta el movimiento y actualiza la caché de stock. No hace commit."""
    if movement.product_id != product.id:
        raise MovementValidationError("El movimiento no pertenece al producto.")
    if movement.type not in MOVEMENT_TYPES:
        raise MovementValidationError(f"Tipo de movimiento desconocido: {movement.type!r}.")

    delta = as_decimal(movement.quantity)
    if movement.type == "entrada" and delta <= 0:
        raise MovementValidationError("Una entrada debe sumar stock.")
    if movement.type == "salida" and delta >= 0:
        raise MovementValidationError("Una salida debe restar stock.")

    resulting = as_decimal(product.stock) + delta
    if resulting < 0:
        raise NegativeResultingStock()

    movement.quantity = delta
    product.stock = resulting
    db.add(movement)
    db.add(product)
    db.flush()
    return movement


def reconcile(db: Session, product: Product) -> Tuple[Decimal, Decimal]:
    """Reconstruye la caché de stock desde el historial. No hace commit.

    Devuelve `(caché anterior, stock recalculado)`.
    """
    cached = as_decimal(product.stock)
    replayed = replayed_stock(db, product.id)
    if cached != replayed:
        logger.warning(
            "Stock del producto %s desincronizado: caché=%s, historial=%s",
            product.id,
            cached,
            replayed,
        )
        product.stock = replayed
        db.add(product)
        db.flush()
    return cached, replayed


def history(
    db: Session,
    product_id: int,
    limit: Optional[int] = None,
    offset: int = 0,
) -> Tuple[List[Tuple[StockMovement, Optional[str]]], int]:
    """Movimientos de un producto, del más nuevo al más viejo.

    Incluye productos desactivados: el historial nunca se oculta.
    Devuelve las filas `(movimiento, nombre del usuario)` y el total sin paginar.
    """
    if db.get(Product, product_id) is None:
        raise ProductNotFound("Producto no encontrado.")

    statement = (
        select(StockMovement, User.name)
        .outerjoin(User, StockMovement.created_by == User.id)
        .where(StockMovement.product_id == product_id)
    )
    total = (
        db.exec(select(func.count()).select_from(statement.subquery())).first() or 0
    )

    statement = statement.order_by(StockMovement.id.desc()).offset(offset)
    if limit is not None:
        statement = statement.limit(limit)

    return db.exec(statement).all(), total


def all_movements(
    db: Session,
    search: Optional[str] = None,
    movement_type: Optional[str] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> Tuple[list, int]:
    """Listado global para auditoría, del más nuevo al más viejo.

    Cada fila trae el movimiento, nombre/código/unidad del producto y el nombre
    del usuario que lo registró.
    """
    if movement_type and movement_type not in MOVEMENT_TYPES:
        raise MovementValidationError(f"Tipo de movimiento desconocido: {movement_type!r}.")

    statement = (
        select(
            StockMovement,
            Product.name,
            Product.code,
            Product.unit,
            User.name,
        )
        .join(Product, StockMovement.product_id == Product.id)
        .outerjoin(User, StockMovement.created_by == User.id)
    )

    if search and search.strip():
        # Filtra por nombre o código (mayúsculas o minúsculas)
        search_like = like_pattern(search)
        statement = statement.where(
            func.lower(Product.name).like(search_like, escape="\\")
            | func.lower(Product.code).like(search_like, escape="\\")
        )

    if movement_type:
        statement = statement.where(StockMovement.type == movement_type)

    total = (
        db.exec(select(func.count()).select_from(statement.subquery())).first() or 0
    )

    statement = statement.order_by(StockMovement.id.desc()).offset(offset)
    if limit is not None:
        statement = statement.limit(limit)

    return db.exec(statement).all(), total
