import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from app.dependencies import require_admin
from app.models.database import get_db
from app.models.product import Product
from app.models.user import User
from app.routers.auth import get_current_user
from app.schemas.alert import AlertSummaryResponse
from app.schemas.movement import MovementResponse, PaginatedMovementsResponse
from app.schemas.product import (
    PaginatedProductResponse,
    ProductCreate,
    ProductResponse,
    ProductUpdate,
    ReconcileResponse,
)
from app.services import alerts, ledger, movements
from app.services.errors import ProductNotFound, StockError
from app.services.locks import product_locks
from app.utils.quantity import format_quantity, format_signed
from app.utils.validation import is_admin_user, like_pattern, normalize_category

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/productos", tags=["Productos"])


def product_to_response(product: Product) -> dict:
    """Datos del producto con su stock derivado y su alerta."""
    return {
        **product.model_dump(),
        "stock": ledger.as_decimal(product.stock),
        "stock_display": format_quantity(product.stock, product.unit),
        "alert_type": alerts.classify_product(product) if product.active else None,
    }


def movement_to_response(movement, created_by_name: Optional[str], unit: str) -> dict:
    return {
        **movement.model_dump(),
        "quantity": ledger.as_decimal(movement.quantity),
        "quantity_display": format_signed(movement.quantity, unit),
        "created_by_name": created_by_name,
    }


def get_product_or_404(db: Session, id: int) -> Product:
    try:
        product = db.get(Product, id)
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error de conexión con la base de datos",
        )
    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Producto no encontrado"
        )
    return product


@router.get("/", response_model=PaginatedProductResponse)
def get_products(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    limit: int = Query(10, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    estado: Optional[bool] = Query(None),
):
    """Lista los productos con su stock actual.
    - Un **admin** ve todos los productos (activos e inactivos).
    - Un **usuario normal** solo ve los productos activos.
    """
    try:
        statement = select(Product)

        if search:
            # Filtra por nombre o código (mayúsculas o minúsculas)
            search_like = like_pattern(search)
            statement = statement.where(
                func.lower(Product.name).like(search_like, escape="\\")
                | func.lower(Product.code).like(search_like, escape="\\")
            )

        if category:
            statement = statement.where(Product.category == normalize_category(category))

        if is_admin_user(current_user) and estado is not None:
            statement = statement.where(Product.active == estado)
        elif not is_admin_user(current_user):
            statement = statement.where(Product.active == True)

        products = db.exec(
            statement.order_by(Product.name).limit(limit).offset(offset)
        ).all()

        # Conteo total SIN paginar
        total_records = (
            db.exec(select(func.count()).select_from(statement.subquery())).first() or 0
        )

    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error de conexión con la base de datos",
        )

    return {
        "data": [product_to_response(product) for product in products],
        "total": total_records,
        "limit": limit,
        "offset": offset,
    }


@router.get("/alertas", response_model=AlertSummaryResponse)
def get_stock_alerts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    type: Optional[str] = Query(None, description="out, low, near o all"),
):
    """Productos sin stock, bajo mínimo o cerca de agotarse.
    Los contadores no dependen del filtro `type`."""
    try:
        products = db.exec(select(Product).where(Product.active == True)).all()
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error de conexión con la base de datos",
        )

    try:
        summary = alerts.summarize(
            products,
            search=search,
            category=normalize_category(category),
            alert_type=type,
        )
    except StockError as e:
        raise e.to_http()

    return {
        "counts": summary.counts,
        "data": [
            {**product_to_response(item.product), "alert_type": item.alert_type}
            for item in summary.items
        ],
    }


@router.get("/{id}", response_model=ProductResponse)
def get_product(
    id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Obtiene un producto específico por su ID.
    - Usuarios normales solo pueden ver productos activos.
    """
    product = get_product_or_404(db, id)

    if not is_admin_user(current_user) and not product.active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No tienes permiso para ver este producto",
        )

    return product_to_response(product)


@router.get("/{id}/movimientos", response_model=PaginatedMovementsResponse)
def get_product_movements(
    id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    """Historial de movimientos del producto, del más nuevo al más viejo.
    También funciona para productos desactivados."""
    product = get_product_or_404(db, id)

    try:
        rows, total = ledger.history(db, id, limit=limit, offset=offset)
    except StockError as e:
        raise e.to_http()
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error de conexión con la base de datos",
        )

    return {
        "data": [
            MovementResponse(**movement_to_response(movement, user_name, product.unit))
            for movement, user_name in rows
        ],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.post("/", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
def create_product(
    product_data: ProductCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Crea un nuevo producto (solo admin).
    El stock inicial queda registrado como el primer movimiento de entrada."""
    try:
        existing_product = db.exec(
            select(Product).where(Product.code == product_data.code)
        ).first()
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error de conexión con la base de datos",
        )

    if existing_product:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="El código ya está registrado."
        )

    new_product = Product(
        **product_data.model_dump(exclude={"stock_inicial", "category"}),
        category=normalize_category(product_data.category),
    )

    try:
        db.add(new_product)
        db.flush()
        movements.seed_initial_stock(
            db, new_product, product_data.stock_inicial, user_id=admin.id
        )
        db.commit()
    except StockError as e:
        db.rollback()
        raise e.to_http()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Error de integridad en la base de datos. Verifica los datos enviados.",
        )
    except SQLAlchemyError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error interno al crear el producto.",
        )

    db.refresh(new_product)
    logger.info("Producto %s creado con stock %s", new_product.id, new_product.stock)
    return product_to_response(new_product)


@router.put("/{id}", response_model=ProductResponse)
def update_product(
    id: int,
    product_update: ProductUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Actualiza los datos de un producto (solo admin). El stock no se edita aquí."""
    product = get_product_or_404(db, id)

    if product_update.code and product_update.code != product.code:
        try:
            existing_product = db.exec(
                select(Product).where(Product.code == product_update.code, Product.id != id)
            ).first()
        except SQLAlchemyError:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error de conexión con la base de datos",
            )
        if existing_product:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="El código ya está en uso"
            )

    changes = product_update.model_dump(exclude_unset=True)

    if "category" in changes:
        changes["category"] = normalize_category(changes["category"])

    try:
        # Con el lock tomado ningún movimiento cambia el stock entre la
        # comprobación de la unidad y el commit
        with product_locks.hold(id):
            product = ledger.load_for_update(db, id)
            if product is None:
                raise ProductNotFound().to_http()

            if changes.get("unit") == "unidad" and product.unit != "unidad":
                stock = ledger.as_decimal(product.stock)
                if stock != stock.to_integral_value():
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail="No se puede pasar a unidades con stock fraccionario.",
                    )

            for key, value in changes.items():
                if value is None and key != "category":
                    continue
                setattr(product, key, value)

            db.add(product)
            db.commit()
    except StockError as e:
        db.rollback()
        raise e.to_http()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Error de integridad en la base de datos. Verifica los datos enviados.",
        )
    except SQLAlchemyError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error interno al actualizar el producto.",
        )

    db.refresh(product)
    return product_to_response(product)


@router.delete("/{id}", response_model=ProductResponse)
def deactivate_product(
    id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)
):
    """Desactiva un producto (solo admin). Sus movimientos se conservan."""
    product = get_product_or_404(db, id)
    product.active = False

    try:
        db.add(product)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error interno al desactivar el producto.",
        )

    db.refresh(product)
    logger.info("Producto %s desactivado", id)
    return product_to_response(product)


@router.post("/{id}/reconciliar", response_model=ReconcileResponse)
def reconcile_product_stock(
    id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)
):
    """Recalcula el stock del producto sumando su historial (solo admin)."""
    try:
        cached, replayed = movements.reconcile_stock(db, id)
    except StockError as e:
        raise e.to_http()

    return {
        "product_id": id,
        "cached": cached,
        "replayed": replayed,
        "drift": cached - replayed,
    }
