import os

# Las variables tienen que existir antes de importar la aplicación
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "clave-de-pruebas")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.main import app
from app.models.database import get_db
from app.models.product import Product
from app.services import movements


@pytest.fixture
def engine():
    """
    Base SQLite en memoria para cada prueba.
    `StaticPool` hace que todas las sesiones compartan la misma conexión.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def make_product(session):
    """Crea productos con su stock inicial registrado como entrada."""
    counter = {"n": 0}

    def _make(stock=0, unit="unidad", min_stock=0, name=None, code=None, category=None):
        counter["n"] += 1
        product = Product(
            name=name or f"Producto {counter['n']}",
            code=code or f"P{counter['n']:03d}",
            category=category,
            unit=unit,
            min_stock=Decimal(str(min_stock)),
        )
        session.add(product)
        session.flush()
        movements.seed_initial_stock(session, product, stock)
        session.commit()
        session.refresh(product)
        return product

    return _make


@pytest.fixture
def client(engine):
    """Cliente HTTP con `get_db` apuntando a la base de la prueba."""

    def override_get_db():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _auth_headers(client, name, email, password="clave-segura-123"):
    response = client.post(
        "/auth/registro", json={"name": name, "email": email, "password": password}
    )
    assert response.status_code == 201, response.text
    response = client.post("/auth/login", data={"username": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def admin_headers(client):
    # El primer usuario registrado queda como admin
    return _auth_headers(client, "Admin Gimnasio", "admin@gimnasio.com")


@pytest.fixture
def staff_headers(client, admin_headers):
    return _auth_headers(client, "Recepción", "recepcion@gimnasio.com")
