from __future__ import annotations
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from uuid import UUID
from datetime import datetime


class ShippingAddress(BaseModel):
    """Address snapshot stored on the order."""

    recipient: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=6, max_length=40)
    line1: str = Field(..., min_length=1, max_length=200)
    line2: Optional[str] = Field(default=None, max_length=200)
    city: str = Field(..., min_length=1, max_length=120)
    district: Optional[str] = Field(default=None, max_length=120)
    ward: Optional[str] = Field(default=None, max_length=120)


class AddressCreate(ShippingAddress):
    label: str = Field(default="Home", min_length=1, max_length=60)
    is_default: bool = False


class AddressUpdate(BaseModel):
    label: Optional[str] = Field(default=None, min_length=1, max_length=60)
    recipient: Optional[str] = Field(default=None, min_length=1, max_length=200)
    phone: Optional[str] = Field(default=None, min_length=6, max_length=40)
    line1: Optional[str] = Field(default=None, min_length=1, max_length=200)
    line2: Optional[str] = Field(default=None, max_length=200)
    city: Optional[str] = Field(default=None, min_length=1, max_length=120)
    district: Optional[str] = Field(default=None, max_length=120)
    ward: Optional[str] = Field(default=None, max_length=120)
    is_default: Optional[bool] = None


class AddressRead(AddressCreate):
    id: UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
