import threading
from decimal import Decimal

import pytest
from sqlmodel import Session, SQLModel, create_engine, select

from app.models.movement import StockMovement
from app.models.product import Product
from app.services import ledger, movements
from app.services.errors import InsufficientStock, StockBusy
from app.services.locks import ProductLockRegistry


def test_lock_ocupado_lanza_busy_tras_reintentos():
    registry = ProductLockRegistry(timeout=0.01, retries=2)

    with registry.hold(1):
        with pytest.raises(StockBusy):
            with registry.hold(1):
                pass


def test_productos_distintos_no_se_bloquean():
    registry = ProductLockRegistry(timeout=0.01, retries=1)

    with registry.hold(1):
        with registry.hold(2):
            pass

    # El lock se libera al salir
    with registry.hold(1):
        pass


@pytest.fixture
def file_engine(tmp_path):
    """SQLite en archivo: cada hilo usa su propia conexión."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'stock.db'}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


def test_salidas_concurrentes_no_dejan_stock_negativo(file_engine):
    with Session(file_engine) as session:
        product = Product(name="Proteína", code="PROT", unit="unidad")
        session.add(product)
        session.flush()
        movements.seed_initial_stock(session, product, 5)
        session.commit()
        product_id = product.id

    barrier = threading.Barrier(2)
    results = []

    def sell_three():
        with Session(file_engine) as session:
            barrier.wait()
            try:
                movements.submit_movement(session, product_id, "salida", 3)
                results.append("ok")
            except InsufficientStock:
                results.append("insufficient_stock")

    threads = [threading.Thread(target=sell_three) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert sorted(results) == ["insufficient_stock", "ok"]

    with Session(file_engine) as session:
        assert ledger.current_stock(session, product_id) == Decimal("2")
        assert ledger.replayed_stock(session, product_id) == Decimal("2")
        salidas = session.exec(
            select(StockMovement).where(
                StockMovement.product_id == product_id, StockMovement.type == "salida"
            )
        ).all()
        assert len(salidas) == 1
