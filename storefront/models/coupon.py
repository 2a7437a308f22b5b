import uuid

from sqlalchemy import String, Integer, DateTime, func, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from storefront.db.session import Base
from storefront.db.types import GUID


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint("discount_percent BETWEEN 1 AND 100", name="ck_coupons_discount_percent"),
        CheckConstraint("usage_limit BETWEEN 1 AND 10", name="ck_coupons_usage_limit"),
        CheckConstraint("used_count >= 0 AND used_count <= usage_limit", name="ck_coupons_used_count"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(5), unique=True, index=True, nullable=False)
    discount_percent: Mapped[int] = mapped_column(Integer, nullable=False)
    usage_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = mapped_column(DateTime(timezone=True), onupdate=func.now())

    @property
    def remaining_uses(self) -> int:
        return max(0, self.usage_limit - self.used_count)
