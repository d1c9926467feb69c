"""
Pytest fixtures for the stockroom test suite.

Provides:
- an in-memory SQLite database shared by the app and the tests
- a session fixture for calling the services directly
- a TestClient with get_db overridden, plus an authenticated user
"""

import os

os.environ["ENV"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stockroom.main import app
from stockroom.database import Base, get_db
from stockroom.core.hashing import hash_password
from stockroom.models.categories import Category
from stockroom.models.products import Product
from stockroom.models.users import User
from stockroom.services.stock_ledger import open_inventory


engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine, "connect")
def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(tables):
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def other_session(tables):
    """A second, independent unit of work on the same database."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db):
    actor = User(
        email="clerk@example.com",
        name="Stock Clerk",
        password_hash=hash_password("not-a-real-password"),
    )
    db.add(actor)
    db.commit()
    db.refresh(actor)
    return actor


@pytest.fixture
def make_product(db, user):
    """Create a product with its inventory row, committed."""
    counter = {"n": 0}

    def _make(
        initial_stock=0,
        category_id=None,
        minimum_stock=0,
        maximum_stock=None,
        reorder_point=None,
        cost_price=Decimal("5.00"),
    ):
        counter["n"] += 1
        product = Product(
            product_code=f"PRD{counter['n']:03d}",
            name=f"Product {counter['n']}",
            unit_price=Decimal("9.99"),
            cost_price=cost_price,
            category_id=category_id,
            created_by=user.id,
        )
        db.add(product)
        db.flush()
        open_inventory(
            db,
            product,
            actor_id=user.id,
            initial_stock=initial_stock,
            minimum_stock=minimum_stock,
            maximum_stock=maximum_stock,
            reorder_point=reorder_point,
            unit_cost=cost_price,
        )
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture
def make_category(db):
    """Insert a category row directly, bypassing the tree checks."""

    def _make(name, parent_id=None, display_order=0, is_active=True):
        category = Category(
            name=name,
            parent_id=parent_id,
            display_order=display_order,
            is_active=is_active,
        )
        db.add(category)
        db.commit()
        db.refresh(category)
        return category

    return _make


# =============================================================================
# HTTP fixtures
# =============================================================================


@pytest.fixture
def client(tables):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(client):
    client.post(
        "/auth/register",
        json={
            "email": "owner@example.com",
            "password": "s3cure-enough",
            "name": "Shop Owner",
        },
    )
    response = client.post(
        "/auth/login",
        data={"username": "owner@example.com", "password": "s3cure-enough"},
    )
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}
