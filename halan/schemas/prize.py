from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal
from halan.models.prize import PrizeType


class PrizeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    prize_type: PrizeType
    prize_value: Decimal = Field(Decimal("0"), ge=0)
    provider_id: Optional[str] = None
    weight: Decimal = Field(Decimal("10"), ge=0)
    color: str = "#f44336"
    is_active: bool = True


class PrizeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    prize_type: Optional[PrizeType] = None
    prize_value: Optional[Decimal] = Field(None, ge=0)
    provider_id: Optional[str] = None
    weight: Optional[Decimal] = Field(None, ge=0)
    color: Optional[str] = None
    is_active: Optional[bool] = None


class PrizeResponse(BaseModel):
    id: int
    name: str
    prize_type: PrizeType
    prize_value: Decimal
    provider_id: Optional[str] = None
    color: str

    class Config:
        from_attributes = True


class PrizeAdminResponse(PrizeResponse):
    weight: Decimal
    is_active: bool
    created_at: datetime
    updated_at: datetime


class PrizeGrantResponse(BaseModel):
    id: str
    prize_id: Optional[int] = None
    name: str
    prize_type: PrizeType
    prize_value: Decimal
    provider_id: Optional[str] = None
    is_redeemed: bool
    redeemed_at: Optional[datetime] = None
    bundle_id: Optional[str] = None
    won_at: datetime

    class Config:
        from_attributes = True
