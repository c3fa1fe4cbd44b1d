"""
Registro de movimientos de stock.

Un pedido de movimiento pasa por Borrador → Validado → Confirmado, o termina
Rechazado. La lectura del stock y la escritura del movimiento ocurren con el
lock del producto tomado, así que la validación siempre se hace contra el stock
real del momento del commit y nunca contra lo que el cliente vio en pantalla.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.models.movement import StockMovement
from app.models.product import Product
from app.services import ledger
from app.services.errors import (
    InsufficientStock,
    MovementValidationError,
    NegativeResultingStock,
    ProductNotFound,
    StockError,
    StorageUnavailable,
    ZeroQuantity,
)
from app.services.locks import product_locks
from app.utils.quantity import RawQuantity, format_signed, format_with_unit, normalize

logger = logging.getLogger(__name__)

INITIAL_STOCK_NOTE = "Stock inicial"


@dataclass(frozen=True)
class MovementPreview:
    """Resultado de simular un movimiento sin registrarlo."""

    delta: Optional[Decimal]
    resulting_stock: Optional[Decimal]
    valid: bool
    error: Optional[str] = None


def signed_delta(movement_type: str, value: Decimal) -> Decimal:
    """Delta con signo según el tipo: entrada suma, salida resta, ajuste respeta el signo."""
    if movement_type == "entrada":
        return abs(value)
    if movement_type == "salida":
        return -abs(value)
    if movement_type == "ajuste":
        return value
    raise MovementValidationError(f"Tipo de movimiento desconocido: {movement_type!r}.")


def validate_delta(movement_type: str, delta: Decimal, stock: Decimal, unit: str):
    """Comprueba que el delta respete el stock actual."""
    if delta == 0:
        raise ZeroQuantity()

    if movement_type == "salida" and -delta > stock:
        raise InsufficientStock(
            f"No hay stock suficiente para esta salida: "
            f"disponible {format_with_unit(stock, unit)}, "
            f"solicitado {format_with_unit(-delta, unit)}."
        )

    if movement_type == "ajuste" and stock + delta < 0:
        raise NegativeResultingStock(
            f"El ajuste de {format_signed(delta, unit)} dejaría el stock en "
            f"{format_with_unit(stock + delta, unit)}."
        )


def preview(product: Product, movement_type: str, raw_quantity: RawQuantity) -> MovementPreview:
    """Simula el movimiento sobre el stock dado. No toca la base de datos."""
    stock = ledger.as_decimal(product.stock)
    try:
        quantity = normalize(raw_quantity, product.unit)
        delta = signed_delta(movement_type, quantity.value)
    except StockError as e:
        return MovementPreview(delta=None, resulting_stock=None, valid=False, error=e.code)

    try:
        validate_delta(movement_type, delta, stock, product.unit)
    except StockError as e:
        return MovementPreview(
            delta=delta, resulting_stock=stock + delta, valid=False, error=e.code
        )

    return MovementPreview(delta=delta, resulting_stock=stock + delta, valid=True)


def submit_movement(
    db: Session,
    product_id: int,
    movement_type: str,
    raw_quantity: RawQuantity,
    notes: Optional[str] = None,
    user_id: Optional[int] = None,
) -> StockMovement:
    """Valida y registra un movimiento de stock.

    - Lanza un `StockError` tipado si el pedido no es válido; en ese caso no
      queda ningún movimiento ni cambio de stock.
    - Lanza `StockBusy` si el producto sigue bloqueado tras los reintentos.
    - Lanza `StorageUnavailable` ante cualquier fallo de la base de datos.
    """
    if movement_type not in ledger.MOVEMENT_TYPES:
        raise MovementValidationError(f"Tipo de movimiento desconocido: {movement_type!r}.")

    notes = notes.strip() if notes else None

    with product_locks.hold(product_id):
        try:
            product = ledger.load_for_update(db, product_id)
            if product is None or not product.active:
                raise ProductNotFound()

            quantity = normalize(raw_quantity, product.unit)
            delta = signed_delta(movement_type, quantity.value)
            validate_delta(movement_type, delta, ledger.as_decimal(product.stock), product.unit)

            movement = StockMovement(
                product_id=product.id,
                type=movement_type,
                quantity=delta,
                notes=notes or None,
                created_by=user_id,
            )
            ledger.append(db, product, movement)
            unit = product.unit
            db.commit()
            db.refresh(movement)
        except StockError as e:
            db.rollback()
            logger.info(
                "Movimiento %s rechazado para el producto %s: %s",
                movement_type,
                product_id,
                e.code,
            )
            raise
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Error al registrar movimiento del producto %s", product_id)
            raise StorageUnavailable()

    logger.info(
        "Movimiento %s registrado: producto %s, %s",
        movement.id,
        product_id,
        format_signed(movement.quantity, unit),
    )
    return movement


def seed_initial_stock(
    db: Session,
    product: Product,
    raw_quantity: RawQuantity,
    user_id: Optional[int] = None,
) -> Optional[StockMovement]:
    """Registra el stock inicial de un producto recién creado como una entrada.

    El producto tiene que estar en la sesión con id asignado (flush). No hace
    commit: el alta del producto y su primer movimiento se confirman juntos.
    Con stock inicial cero no se crea movimiento.
    """
    quantity = normalize(raw_quantity, product.unit)
    if quantity.value < 0:
        raise MovementValidationError("El stock inicial no puede ser negativo.")
    if quantity.value == 0:
        return None

    movement = StockMovement(
        product_id=product.id,
        type="entrada",
        quantity=quantity.value,
        notes=INITIAL_STOCK_NOTE,
        created_by=user_id,
    )
    return ledger.append(db, product, movement)


def reconcile_stock(db: Session, product_id: int) -> Tuple[Decimal, Decimal]:
    """Recalcula la caché de stock de un producto desde su historial."""
    with product_locks.hold(product_id):
        try:
            product = ledger.load_for_update(db, product_id)
            if product is None:
                raise ProductNotFound("Producto no encontrado.")
            cached, replayed = ledger.reconcile(db, product)
            db.commit()
        except StockError:
            db.rollback()
            raise
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Error al reconciliar el stock del producto %s", product_id)
            raise StorageUnavailable()
    return cached, replayed
