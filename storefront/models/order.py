import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String,
    Enum,
    ForeignKey,
    BigInteger,
    Integer,
    Boolean,
    DateTime,
    func,
    Text,
    JSON,
    UniqueConstraint,
    Index,
)

from storefront.db.session import Base
from storefront.db.types import GUID
from storefront.domain.enums import OrderStatus, PaymentMethod, PaymentStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("idempotency_scope", "idempotency_key", name="uq_orders_idempotency"),
        Index("ix_orders_user_created", "user_id", "created_at"),
        Index("ix_orders_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    # Buyer; guest checkouts are linked to the account matching guest_email
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    guest_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    currency: Mapped[str] = mapped_column(String(3), default="VND", nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status"), default=OrderStatus.pending, nullable=False
    )
    payment_method: Mapped[PaymentMethod] = mapped_column(
        Enum(PaymentMethod, name="payment_method"), default=PaymentMethod.cod, nullable=False
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status"), default=PaymentStatus.unpaid, nullable=False
    )

    # Pricing snapshot, frozen at confirm time
    subtotal_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    tax_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    shipping_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    discount_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    loyalty_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    coupon_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True, index=True
    )
    coupon_code: Mapped[str | None] = mapped_column(String(5), nullable=True)
    discount_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    points_redeemed: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    points_awarded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    shipping_address: Mapped[dict] = mapped_column(JSON, nullable=False)
    payment_info: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    idempotency_scope: Mapped[str | None] = mapped_column(String(160), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(120), nullable=True)

    paid_at = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = mapped_column(DateTime(timezone=True), onupdate=func.now())

    lines: Mapped[list["OrderLine"]] = relationship(
        "OrderLine", back_populates="order", cascade="all, delete-orphan"
    )
    status_history: Mapped[list["OrderStatusEntry"]] = relationship(
        "OrderStatusEntry",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusEntry.seq",
    )

    @property
    def order_number(self) -> str:
        return self.id.hex[-8:].upper()

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)


class OrderLine(Base):
    __tablename__ = "order_lines"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    variant_sku: Mapped[str | None] = mapped_column(String(64), nullable=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    line_total: Mapped[int] = mapped_column(BigInteger, nullable=False)

    order = relationship("Order", back_populates="lines")


class OrderStatusEntry(Base):
    """Append-only status history; rows are never updated."""

    __tablename__ = "order_status_history"
    __table_args__ = (UniqueConstraint("order_id", "seq", name="uq_order_status_history_seq"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[OrderStatus] = mapped_column(Enum(OrderStatus, name="order_status"), nullable=False)
    note: Mapped[str | None] = mapped_column(String(255), nullable=True)
    at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    order = relationship("Order", back_populates="status_history")
