import os
from decimal import Decimal
from typing import Generator

# Keep the app's import-time engine off the working directory
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront import crud, schemas
from storefront.config import get_settings
from storefront.db import Base
from storefront.main import app, get_db

TEST_SECRET = "test-secret"
IMAGE_URL = "http://testserver/public/uploads/widget.png-1.png"


@pytest.fixture(scope="function")
def db_session() -> Generator:
    # Use in-memory SQLite with a single connection
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def settings(tmp_path):
    return get_settings()._replace(
        auth_enabled=False,
        jwt_secret=TEST_SECRET,
        upload_dir=str(tmp_path / "uploads"),
        search_creates_on_miss=True,
    )


def _client_for(db_session, settings):
    # Override dependencies to use the same session and settings
    def override_get_db():
        try:
            yield db_session
        finally:
            pass
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    from fastapi.testclient import TestClient
    return TestClient(app)


@pytest.fixture(scope="function")
def client_factory(db_session, settings):
    def _make(**changes):
        return _client_for(db_session, settings._replace(**changes))
    yield _make
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client(client_factory):
    with client_factory() as c:
        yield c


@pytest.fixture(scope="function")
def auth_client(client_factory):
    with client_factory(auth_enabled=True) as c:
        yield c


@pytest.fixture
def category(db_session):
    return crud.create_category(db_session, schemas.CategoryCreate(name="Gadgets", icon="icon-gadget", color="#55879"))


@pytest.fixture
def make_product(db_session, category):
    def _make(name="Widget", price="10.00", **extra):
        fields = schemas.ProductFields(name=name, price=Decimal(price), category=category.id, **extra)
        return crud.create_product(db_session, fields, image_url=IMAGE_URL)
    return _make


@pytest.fixture
def make_user(db_session):
    def _make(name="Alice", email=None, password="secret", is_admin=False):
        user = schemas.UserCreate(
            name=name,
            email=email or f"{name.lower()}@example.com",
            password=password,
            is_admin=is_admin,
        )
        return crud.create_user(db_session, user)
    return _make


@pytest.fixture
def order_request():
    def _build(user_id, lines, status="Pending"):
        return schemas.OrderCreate(
            order_items=[schemas.OrderItemCreate(product=p, quantity=q) for p, q in lines],
            shipping_address1="No 45, Park Street",
            shipping_address2="No 46, Main Street",
            city="Colombo",
            zip="10600",
            country="Sri Lanka",
            phone="+94717185748",
            status=status,
            user=user_id,
        )
    return _build
