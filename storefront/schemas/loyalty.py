from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from storefront.domain.enums import LedgerEntryType


class LoyaltyRedemption(BaseModel):
    total_points: int
    max_allowed: int
    applied_points: int
    remaining_points: int

    model_config = ConfigDict(from_attributes=True)


class PointsLedgerRead(BaseModel):
    id: UUID
    order_id: Optional[UUID]
    points: int
    entry_type: LedgerEntryType
    description: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PointsSummary(BaseModel):
    total_points: int
    total: int
    page: int
    pages: int
    limit: int
    items: List[PointsLedgerRead]
