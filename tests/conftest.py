# tests/conftest.py
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import os
import uuid
from typing import Callable, Generator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-storefront-suite")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("ASYNC_DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("VNP_TMN_CODE", "TESTTMN1")
os.environ.setdefault("VNP_HASH_SECRET", "TESTSECRETKEYFORVNPAYSANDBOX0001")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")
os.environ.setdefault("EMAILS_ENABLED", "false")

from storefront.main import app
from storefront.db.session import Base
from storefront.db.session_async import AsyncSessionLocal
from storefront.core.security import get_password_hash
from storefront.models.coupon import Coupon
from storefront.models.product import Product, ProductVariant
from storefront.models.user import User

from tests.helpers import TestingSessionLocal, sync_engine, token_for


# ---------- Database ----------
@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create the SQLite schema once per test session."""
    import storefront.models.user  # noqa: F401
    import storefront.models.product  # noqa: F401
    import storefront.models.cart  # noqa: F401
    import storefront.models.coupon  # noqa: F401
    import storefront.models.order  # noqa: F401
    import storefront.models.loyalty  # noqa: F401

    Base.metadata.drop_all(bind=sync_engine)
    Base.metadata.create_all(bind=sync_engine)
    yield
    Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with sync_engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Short-lived sync session for seeding data."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest_asyncio.fixture(scope="function")
async def client():
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def async_db_session() -> AsyncSession:
    """AsyncSession for service-level tests."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.rollback()


# ---------- Users and tokens ----------
def _make_user(db_session: Session, *, prefix: str, points: int = 0, is_superuser: bool = False) -> User:
    user = User(
        email=f"{prefix}-{uuid.uuid4().hex[:8]}@storefront.vn",
        name=f"Test {prefix.title()}",
        hashed_password=get_password_hash("Secret1234"),
        is_active=True,
        is_superuser=is_superuser,
        total_points=points,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def normal_user(db_session: Session) -> User:
    return _make_user(db_session, prefix="user")


@pytest.fixture(scope="function")
def rich_user(db_session: Session) -> User:
    """Customer holding 1,000,000 loyalty points."""
    return _make_user(db_session, prefix="loyal", points=1_000_000)


@pytest.fixture(scope="function")
def admin_user(db_session: Session) -> User:
    return _make_user(db_session, prefix="admin", is_superuser=True)


@pytest.fixture(scope="function")
def user_token(normal_user: User) -> str:
    return token_for(normal_user, ["users:me"])


@pytest.fixture(scope="function")
def rich_token(rich_user: User) -> str:
    return token_for(rich_user, ["users:me"])


@pytest.fixture(scope="function")
def admin_token(admin_user: User) -> str:
    return token_for(admin_user, ["admin"])


# ---------- Catalog ----------
@pytest.fixture(scope="function")
def make_product(db_session: Session) -> Callable[..., Product]:
    def _make(
        name: str = "Laptop Pro 14",
        price: int = 1_000_000,
        stock: int = 10,
        max_per_order: int | None = None,
        is_active: bool = True,
    ) -> Product:
        product = Product(
            name=name,
            price=price,
            stock=stock,
            max_per_order=max_per_order,
            image_url=f"https://cdn.storefront.vn/{uuid.uuid4().hex[:6]}.jpg",
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product

    return _make


@pytest.fixture(scope="function")
def make_variant(db_session: Session) -> Callable[..., ProductVariant]:
    def _make(product: Product, sku: str, *, price: int, stock: int = 5, name: str = "16GB / Silver") -> ProductVariant:
        variant = ProductVariant(product_id=product.id, sku=sku, name=name, price=price, stock=stock, is_active=True)
        db_session.add(variant)
        db_session.commit()
        db_session.refresh(variant)
        return variant

    return _make


@pytest.fixture(scope="function")
def make_coupon(db_session: Session) -> Callable[..., Coupon]:
    def _make(code: str = "SAVE5", discount_percent: int = 10, usage_limit: int = 10, used_count: int = 0) -> Coupon:
        coupon = Coupon(code=code, discount_percent=discount_percent, usage_limit=usage_limit, used_count=used_count)
        db_session.add(coupon)
        db_session.commit()
        db_session.refresh(coupon)
        return coupon

    return _make

