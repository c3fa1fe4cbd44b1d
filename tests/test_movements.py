"""
Pruebas del servicio de movimientos y del ledger contra una base SQLite en memoria.
"""
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from app.models.movement import StockMovement
from app.services import ledger, movements
from app.services.errors import (
    InsufficientStock,
    MovementValidationError,
    NegativeResultingStock,
    ProductNotFound,
    QuantityNotIntegral,
    StorageUnavailable,
    ZeroQuantity,
)
from app.services.locks import product_locks
from app.utils.quantity import format_quantity


def _movements_of(session, product_id):
    return session.exec(
        select(StockMovement).where(StockMovement.product_id == product_id)
    ).all()


def test_stock_inicial_se_registra_como_entrada(session, make_product):
    product = make_product(stock=5)

    history = _movements_of(session, product.id)
    assert len(history) == 1
    assert history[0].type == "entrada"
    assert history[0].quantity == Decimal("5")
    assert history[0].notes == movements.INITIAL_STOCK_NOTE
    assert ledger.current_stock(session, product.id) == Decimal("5")


def test_stock_inicial_cero_no_crea_movimiento(session, make_product):
    product = make_product(stock=0)

    assert _movements_of(session, product.id) == []
    assert ledger.current_stock(session, product.id) == 0


def test_entrada_suma_stock(session, make_product):
    product = make_product(stock=5)

    movement = movements.submit_movement(session, product.id, "entrada", 3, notes=" compra ")

    assert movement.quantity == Decimal("3")
    assert movement.notes == "compra"
    assert ledger.current_stock(session, product.id) == Decimal("8")
    assert len(_movements_of(session, product.id)) == 2


def test_entrada_usa_el_valor_absoluto(session, make_product):
    product = make_product(stock=1)

    movement = movements.submit_movement(session, product.id, "entrada", -2)

    assert movement.quantity == Decimal("2")
    assert ledger.current_stock(session, product.id) == Decimal("3")


def test_salida_resta_stock(session, make_product):
    product = make_product(stock=5)

    movement = movements.submit_movement(session, product.id, "salida", "3")

    assert movement.quantity == Decimal("-3")
    assert ledger.current_stock(session, product.id) == Decimal("2")


def test_salida_sin_stock_suficiente_no_deja_rastro(session, make_product):
    product = make_product(stock=5)

    with pytest.raises(InsufficientStock):
        movements.submit_movement(session, product.id, "salida", 10)

    assert ledger.current_stock(session, product.id) == Decimal("5")
    assert len(_movements_of(session, product.id)) == 1


def test_salida_de_todo_el_stock(session, make_product):
    product = make_product(stock=5)

    movements.submit_movement(session, product.id, "salida", 5)

    assert ledger.current_stock(session, product.id) == 0


def test_ajuste_negativo_que_deja_stock_negativo(session, make_product):
    product = make_product(stock=2)

    with pytest.raises(NegativeResultingStock):
        movements.submit_movement(session, product.id, "ajuste", -5)

    assert ledger.current_stock(session, product.id) == Decimal("2")


def test_ajuste_con_signo(session, make_product):
    product = make_product(stock=2)

    movements.submit_movement(session, product.id, "ajuste", -2)
    movements.submit_movement(session, product.id, "ajuste", "4")

    assert ledger.current_stock(session, product.id) == Decimal("4")


def test_entrada_fraccionaria_en_kg(session, make_product):
    product = make_product(stock="1.250", unit="kg")

    movements.submit_movement(session, product.id, "entrada", 2.75)

    stock = ledger.current_stock(session, product.id)
    assert stock == Decimal("4.000")
    assert format_quantity(stock, product.unit) == "4"


@pytest.mark.parametrize(
    "movement_type, raw, error",
    [
        ("entrada", 0, ZeroQuantity),
        ("ajuste", "0", ZeroQuantity),
        ("entrada", "1.5", QuantityNotIntegral),
        ("entrada", "mucho", MovementValidationError),
        ("entrada", "1e30", MovementValidationError),
        ("ajuste", 1e30, MovementValidationError),
        ("regalo", 1, MovementValidationError),
    ],
)
def test_pedidos_invalidos(session, make_product, movement_type, raw, error):
    product = make_product(stock=5)

    with pytest.raises(error):
        movements.submit_movement(session, product.id, movement_type, raw)

    assert ledger.current_stock(session, product.id) == Decimal("5")
    assert len(_movements_of(session, product.id)) == 1


def test_producto_inexistente_o_inactivo(session, make_product):
    product = make_product(stock=5)
    product.active = False
    session.add(product)
    session.commit()

    with pytest.raises(ProductNotFound):
        movements.submit_movement(session, product.id, "entrada", 1)
    with pytest.raises(ProductNotFound):
        movements.submit_movement(session, 9999, "entrada", 1)


def test_stock_nunca_negativo_y_coincide_con_el_historial(session, make_product):
    product = make_product(stock=3)
    requests = [
        ("salida", 2), ("salida", 2), ("entrada", 4), ("ajuste", -6),
        ("ajuste", -5), ("salida", 5), ("entrada", 1), ("salida", 1),
    ]

    for movement_type, quantity in requests:
        try:
            movements.submit_movement(session, product.id, movement_type, quantity)
        except (InsufficientStock, NegativeResultingStock):
            pass
        stock = ledger.current_stock(session, product.id)
        assert stock >= 0
        assert stock == ledger.replayed_stock(session, product.id)

    assert ledger.current_stock(session, product.id) == ledger.current_stock(session, product.id)


def test_reconciliar_corrige_la_cache(session, make_product):
    product = make_product(stock=5)
    movements.submit_movement(session, product.id, "salida", 2)

    # Caché corrupta a propósito
    product.stock = Decimal("99")
    session.add(product)
    session.commit()

    cached, replayed = movements.reconcile_stock(session, product.id)

    assert cached == Decimal("99")
    assert replayed == Decimal("3")
    assert ledger.current_stock(session, product.id) == Decimal("3")


def test_append_rechaza_signos_incoherentes(session, make_product):
    product = make_product(stock=5)

    with pytest.raises(MovementValidationError):
        ledger.append(
            session,
            product,
            StockMovement(product_id=product.id, type="salida", quantity=Decimal("2")),
        )
    with pytest.raises(NegativeResultingStock):
        ledger.append(
            session,
            product,
            StockMovement(product_id=product.id, type="ajuste", quantity=Decimal("-6")),
        )
    session.rollback()


def test_historial_del_mas_nuevo_al_mas_viejo(session, make_product):
    product = make_product(stock=5)
    movements.submit_movement(session, product.id, "salida", 1)
    movements.submit_movement(session, product.id, "ajuste", 2)

    rows, total = ledger.history(session, product.id)

    assert total == 3
    assert [movement.type for movement, _ in rows] == ["ajuste", "salida", "entrada"]

    rows, total = ledger.history(session, product.id, limit=1, offset=1)
    assert total == 3
    assert [movement.type for movement, _ in rows] == ["salida"]


def test_historial_de_producto_desactivado(session, make_product):
    product = make_product(stock=5)
    product.active = False
    session.add(product)
    session.commit()

    rows, total = ledger.history(session, product.id)
    assert total == 1

    with pytest.raises(ProductNotFound):
        ledger.history(session, 9999)


def test_listado_global_con_filtros(session, make_product):
    agua = make_product(stock=10, name="Agua mineral", code="AGUA")
    barra = make_product(stock=10, name="Barra proteica", code="BARRA")
    movements.submit_movement(session, agua.id, "salida", 1)
    movements.submit_movement(session, barra.id, "ajuste", -1)

    rows, total = ledger.all_movements(session)
    assert total == 4
    assert rows[0][0].product_id == barra.id
    assert rows[0][2] == "BARRA"

    rows, total = ledger.all_movements(session, search="agua")
    assert total == 2
    assert {row[1] for row in rows} == {"Agua mineral"}

    rows, total = ledger.all_movements(session, movement_type="ajuste")
    assert [row[0].type for row in rows] == ["ajuste"]

    with pytest.raises(MovementValidationError):
        ledger.all_movements(session, movement_type="regalo")


def test_preview_no_registra_nada(session, make_product):
    product = make_product(stock=5)

    result = movements.preview(product, "salida", 3)
    assert result.valid
    assert result.delta == Decimal("-3")
    assert result.resulting_stock == Decimal("2")

    result = movements.preview(product, "salida", 10)
    assert not result.valid
    assert result.error == "insufficient_stock"
    assert result.resulting_stock == Decimal("-5")

    result = movements.preview(product, "entrada", "1.5")
    assert result == movements.MovementPreview(
        delta=None, resulting_stock=None, valid=False, error="quantity_not_integral"
    )

    assert len(_movements_of(session, product.id)) == 1


def test_preview_con_cantidad_fuera_de_rango(session, make_product):
    product = make_product(stock=5)

    result = movements.preview(product, "entrada", "1e30")

    assert not result.valid
    assert result.error == "validation_error"
    assert result.delta is None


def test_fallo_de_la_base_al_confirmar(session, make_product, monkeypatch):
    product = make_product(stock=5)

    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("disco lleno"))

    monkeypatch.setattr(session, "commit", failing_commit)
    with pytest.raises(StorageUnavailable):
        movements.submit_movement(session, product.id, "salida", 2)
    monkeypatch.undo()

    assert not product_locks.get(product.id).locked()
    assert ledger.current_stock(session, product.id) == Decimal("5")
    assert ledger.replayed_stock(session, product.id) == Decimal("5")
    assert len(_movements_of(session, product.id)) == 1

    # El producto sigue aceptando movimientos
    movements.submit_movement(session, product.id, "salida", 2)
    assert ledger.current_stock(session, product.id) == Decimal("3")


def test_leer_el_stock_no_lo_modifica(session, make_product):
    product = make_product(stock=5, unit="kg")
    movements.submit_movement(session, product.id, "salida", "1.25")

    first = ledger.current_stock(session, product.id)
    second = ledger.current_stock(session, product.id)

    assert first == second == Decimal("3.750")
    assert len(_movements_of(session, product.id)) == 2


def test_listado_global_busca_comodines_literales(session, make_product):
    make_product(stock=1, name="Agua 50%", code="AG_1")
    make_product(stock=1, name="Agua 500", code="AGX1")

    rows, total = ledger.all_movements(session, search="ag_")
    assert total == 1
    assert rows[0][2] == "AG_1"

    rows, total = ledger.all_movements(session, search="%")
    assert [row[1] for row in rows] == ["Agua 50%"]

    rows, total = ledger.all_movements(session, search="agua")
    assert total == 2
