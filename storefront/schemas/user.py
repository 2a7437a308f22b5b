# storefront/schemas/user.py
from pydantic import BaseModel, EmailStr, ConfigDict
from typing import List
from uuid import UUID


class TokenPayload(BaseModel):
    sub: str | None = None
    exp: int | None = None
    type: str | None = None
    scopes: List[str] = []


class UserRead(BaseModel):
    id: UUID
    email: EmailStr
    name: str | None = None
    is_active: bool
    is_superuser: bool
    total_points: int

    model_config = ConfigDict(from_attributes=True)
