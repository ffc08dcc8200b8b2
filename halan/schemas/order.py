from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from halan.models.order import OrderStatus, OrderOrigin
from halan.utils.validation import normalize_phone, normalize_address


class OrderItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0)
    provider_id: Optional[str] = None
    product_id: Optional[str] = None


class OrderCreate(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_phone: str
    delivery_address: str
    delivery_latitude: Optional[float] = Field(None, ge=-90, le=90)
    delivery_longitude: Optional[float] = Field(None, ge=-180, le=180)
    items: List[OrderItemCreate] = Field(default_factory=list)
    delivery_fee: Decimal = Field(Decimal("0.00"), ge=0)
    courier_id: Optional[str] = None
    supervisor_id: Optional[str] = None  # owner only; supervisors are attributed automatically
    provider_id: Optional[str] = None
    origin: OrderOrigin = OrderOrigin.MANUAL
    notes: Optional[str] = None

    @field_validator("customer_phone")
    @classmethod
    def check_phone(cls, value):
        return normalize_phone(value)

    @field_validator("delivery_address")
    @classmethod
    def check_address(cls, value):
        return normalize_address(value)


class OrderUpdate(BaseModel):
    """Partial edit; only the fields present in the request are applied"""
    customer_name: Optional[str] = Field(None, min_length=1, max_length=255)
    customer_phone: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_latitude: Optional[float] = Field(None, ge=-90, le=90)
    delivery_longitude: Optional[float] = Field(None, ge=-180, le=180)
    items: Optional[List[OrderItemCreate]] = None
    delivery_fee: Optional[Decimal] = Field(None, ge=0)
    courier_id: Optional[str] = None
    supervisor_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("customer_phone")
    @classmethod
    def check_phone(cls, value):
        return normalize_phone(value) if value is not None else value

    @field_validator("delivery_address")
    @classmethod
    def check_address(cls, value):
        return normalize_address(value) if value is not None else value


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    notes: Optional[str] = None


class CourierAssignmentRequest(BaseModel):
    courier_id: str


class OrderItemResponse(BaseModel):
    id: str
    name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    provider_id: Optional[str] = None
    product_id: Optional[str] = None

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: str
    order_number: str
    status: OrderStatus
    origin: OrderOrigin
    can_reject: bool
    customer_id: Optional[str] = None
    customer_name: str
    customer_phone: str
    delivery_address: str
    delivery_latitude: Optional[float] = None
    delivery_longitude: Optional[float] = None
    provider_id: Optional[str] = None
    courier_id: Optional[str] = None
    courier_name: Optional[str] = None
    supervisor_id: Optional[str] = None
    supervisor_name: Optional[str] = None
    bundle_id: Optional[str] = None
    is_edited: bool
    items: List[OrderItemResponse] = Field(default_factory=list)
    subtotal: Decimal
    discount: Decimal
    delivery_fee: Decimal
    total: Decimal
    notes: Optional[str] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StatusHistoryResponse(BaseModel):
    status: OrderStatus
    changed_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class OrderCancel(BaseModel):
    reason: Optional[str] = None
