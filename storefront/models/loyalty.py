import uuid
from datetime import datetime, timezone

from sqlalchemy import String, BigInteger, DateTime, Enum, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from storefront.db.session import Base
from storefront.db.types import GUID
from storefront.domain.enums import LedgerEntryType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PointsLedgerEntry(Base):
    """Append-only record of every change to ``User.total_points``."""

    __tablename__ = "points_ledger"
    __table_args__ = (
        Index("ix_points_ledger_user_created", "user_id", "created_at"),
        CheckConstraint("points > 0", name="ck_points_ledger_points_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    order_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True
    )
    # Always positive; the entry type carries the direction.
    points: Mapped[int] = mapped_column(BigInteger, nullable=False)
    entry_type: Mapped[LedgerEntryType] = mapped_column(
        Enum(LedgerEntryType, name="ledger_entry_type"), nullable=False
    )
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    @property
    def signed_points(self) -> int:
        return -self.points if self.entry_type == LedgerEntryType.redeem else self.points
