from sqlalchemy import Column, String, Integer, Numeric, DateTime, ForeignKey, Boolean, Float, Text
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
from decimal import Decimal
import enum
from halan.database import Base
from halan.models.types import EnumValue


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    READY_FOR_PICKUP = "ready_for_pickup"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderOrigin(str, enum.Enum):
    MANUAL = "manual"
    CUSTOMER_CHANNEL = "customer-channel"
    OTHER = "other"


class Order(Base):
    __tablename__ = "delivery_orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_number = Column(String(50), unique=True, nullable=False, index=True)
    status = Column(EnumValue(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)
    origin = Column(EnumValue(OrderOrigin), default=OrderOrigin.MANUAL, nullable=False)
    # Manual orders can only be cancelled by an owner or supervisor
    can_reject = Column(Boolean, default=True, nullable=False)

    # Customer contact + destination
    customer_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    customer_name = Column(String(255), nullable=False)
    customer_phone = Column(String(20), nullable=False)
    delivery_address = Column(Text, nullable=False)
    delivery_latitude = Column(Float, nullable=True)
    delivery_longitude = Column(Float, nullable=True)

    # Who fulfils / carries / dispatched it
    provider_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    courier_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    supervisor_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by = Column(String(36), nullable=True)

    # Orders created together from one checkout share this key
    bundle_id = Column(String(36), nullable=True, index=True)
    is_edited = Column(Boolean, default=False, nullable=False)

    subtotal = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    discount = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    delivery_fee = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    total = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)

    notes = Column(Text, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.position"
    )
    status_history = relationship(
        "OrderStatusHistory", back_populates="order", cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id"
    )
    courier = relationship("User", foreign_keys=[courier_id])
    supervisor = relationship("User", foreign_keys=[supervisor_id])

    @property
    def courier_name(self):
        return self.courier.name if self.courier else None

    @property
    def supervisor_name(self):
        return self.supervisor.name if self.supervisor else None

    def __repr__(self):
        return f"<Order {self.order_number} ({self.status.value})>"


class OrderItem(Base):
    __tablename__ = "delivery_order_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_id = Column(String(36), ForeignKey("delivery_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, default=0, nullable=False)
    name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    provider_id = Column(String(36), nullable=True)
    product_id = Column(String(36), nullable=True)

    order = relationship("Order", back_populates="items")

    @property
    def subtotal(self):
        return Decimal(self.unit_price) * self.quantity
