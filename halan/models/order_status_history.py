from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from halan.database import Base
from halan.models.order import OrderStatus
from halan.models.types import EnumValue


class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("delivery_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(EnumValue(OrderStatus), nullable=False)
    changed_by = Column(String(36), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    order = relationship("Order", back_populates="status_history")
