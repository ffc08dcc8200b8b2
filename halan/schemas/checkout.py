from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from decimal import Decimal
from halan.schemas.order import OrderResponse
from halan.utils.validation import normalize_phone, normalize_address


class CheckoutItem(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0)
    provider_id: str = Field(..., min_length=1)
    product_id: Optional[str] = None


class CheckoutRequest(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_phone: str
    delivery_address: str
    delivery_latitude: Optional[float] = Field(None, ge=-90, le=90)
    delivery_longitude: Optional[float] = Field(None, ge=-180, le=180)
    items: List[CheckoutItem] = Field(..., min_length=1)
    grant_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("customer_phone")
    @classmethod
    def check_phone(cls, value):
        return normalize_phone(value)

    @field_validator("delivery_address")
    @classmethod
    def check_address(cls, value):
        return normalize_address(value)


class ProviderGroupQuote(BaseModel):
    provider_id: str
    item_count: int
    subtotal: Decimal
    discount: Decimal
    delivery_fee: Decimal
    total: Decimal


class CheckoutQuote(BaseModel):
    groups: List[ProviderGroupQuote]
    subtotal: Decimal
    discount: Decimal
    delivery_fee: Decimal
    total: Decimal
    grant_id: Optional[str] = None
    grant_applicable: Optional[bool] = None
    grant_message: Optional[str] = None


class BundleResponse(BaseModel):
    bundle_id: str
    grant_id: Optional[str] = None
    orders: List[OrderResponse]
    subtotal: Decimal
    discount: Decimal
    delivery_fee: Decimal
    total: Decimal
