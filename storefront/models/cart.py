# storefront/models/cart.py
import uuid
from datetime import datetime, timezone
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, DateTime, func, BigInteger, Integer, ForeignKey, UniqueConstraint, CheckConstraint

from storefront.db.session import Base
from storefront.db.types import GUID


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Cart(Base):
    """One cart per identity: either a signed-in user or an opaque guest token."""

    __tablename__ = "carts"
    __table_args__ = (
        UniqueConstraint("guest_token", name="uq_carts_guest_token"),
        UniqueConstraint("user_id", name="uq_carts_user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4, nullable=False)
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    guest_token: Mapped[str | None] = mapped_column(String(120), nullable=True)

    currency: Mapped[str] = mapped_column(String(3), default="VND", nullable=False)

    created_at = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    items: Mapped[list["CartItem"]] = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="CartItem.created_at",
    )

    @property
    def subtotal(self) -> int:
        return sum(item.price_at_add * item.quantity for item in self.items)

    @property
    def count(self) -> int:
        return sum(item.quantity for item in self.items)


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4, nullable=False)
    cart_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    variant_sku: Mapped[str | None] = mapped_column(String(64), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    # Snapshots taken when the line is first added; later catalog edits do not touch them.
    price_at_add: Mapped[int] = mapped_column(BigInteger, nullable=False)
    name_snapshot: Mapped[str] = mapped_column(String(200), nullable=False)
    image_snapshot: Mapped[str | None] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    cart = relationship("Cart", back_populates="items")

    @property
    def line_total(self) -> int:
        return self.price_at_add * self.quantity
