import os
from decimal import Decimal
from typing import Generator

# Keep the import-time engine off the working directory
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront import auth, models
from storefront.db import Base, enable_sqlite_foreign_keys
from storefront.main import app, get_db
from storefront.seed import seed


@pytest.fixture(scope="function")
def db_session() -> Generator:
    # Use in-memory SQLite with a single connection
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    enable_sqlite_foreign_keys(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture(scope="function")
def roles(db_session) -> dict:
    return seed(db_session)


@pytest.fixture(scope="function")
def client(db_session, roles):
    # Override dependency to use the same session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass
    app.dependency_overrides[get_db] = override_get_db
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session, roles):
    counter = {"n": 0}

    def _make(role: str = auth.RoleName.CLIENT.value, password: str = "secret", email: str | None = None):
        counter["n"] += 1
        user = models.User(
            first_name="User",
            last_name=str(counter["n"]),
            email=email or f"user{counter['n']}@example.com",
            password_hash=auth.hash_password(password),
            role_id=roles[role],
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def identity_for():
    def _identity(user: models.User) -> auth.Identity:
        return auth.Identity(user_id=user.id, email=user.email, role=user.role.name)

    return _identity


@pytest.fixture
def headers_for(client):
    def _headers(user: models.User, password: str = "secret") -> dict:
        r = client.post("/auth/login", json={"email": user.email, "password": password})
        assert r.status_code == 200, r.text
        return {"Authorization": f"Bearer {r.json()['token']}"}

    return _headers


@pytest.fixture
def make_product(db_session):
    def _make(name: str = "Bata clasica", price: str = "100.00", category: str = "Batas", description: str | None = None):
        cat = db_session.query(models.Category).filter(models.Category.name == category).first()
        if not cat:
            cat = models.Category(name=category)
            db_session.add(cat)
        product = models.Product(name=name, price=Decimal(price), description=description, categories=[cat])
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product

    return _make
