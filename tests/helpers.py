"""Shared test helpers: sync engine for seeding and reading back state."""

import uuid

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from storefront.core.security import create_access_token
from storefront.models.coupon import Coupon
from storefront.models.product import Product, ProductVariant
from storefront.models.user import User

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

sync_engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=sync_engine, expire_on_commit=False)

SHIPPING = {
    "recipient": "Nguyen Van A",
    "phone": "0901234567",
    "line1": "12 Le Loi",
    "city": "Ho Chi Minh",
    "district": "District 1",
    "ward": "Ben Nghe",
}


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def token_for(user: User, scopes: list[str]) -> str:
    return create_access_token(str(user.id), extra={"scopes": scopes})


def guest_headers(token: str | None = None) -> dict[str, str]:
    return {"x-guest-token": token or f"guest-{uuid.uuid4().hex}"}


def read_stock(product_id) -> int:
    with TestingSessionLocal() as session:
        return session.get(Product, product_id).stock


def read_variant_stock(sku: str) -> int:
    with TestingSessionLocal() as session:
        return session.scalar(select(ProductVariant.stock).where(ProductVariant.sku == sku))


def read_points(user_id) -> int:
    with TestingSessionLocal() as session:
        return session.get(User, user_id).total_points


def read_coupon_uses(coupon_id) -> int:
    with TestingSessionLocal() as session:
        return session.get(Coupon, coupon_id).used_count
