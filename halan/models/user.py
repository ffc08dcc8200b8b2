from sqlalchemy import Column, String, Boolean, DateTime, Integer
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
import enum
from halan.database import Base
from halan.models.types import EnumValue


class Role(str, enum.Enum):
    OWNER = "owner"
    SUPERVISOR = "supervisor"
    COURIER = "courier"
    CUSTOMER = "customer"
    PROVIDER = "provider"


class User(Base):
    """
    Any account the engine needs to reason about.

    Couriers carry an availability flag and a cap on concurrent active orders.
    Users are never hard-deleted while orders reference them; removal sets
    ``is_active`` to False.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True, index=True)
    role = Column(EnumValue(Role), nullable=False, index=True)

    # Couriers only
    is_available = Column(Boolean, default=False, nullable=False)
    max_active_orders = Column(Integer, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    deactivated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    supervisor_links = relationship(
        "CourierSupervisor",
        foreign_keys="CourierSupervisor.courier_id",
        back_populates="courier",
        cascade="all, delete-orphan",
    )
    prize_grants = relationship("PrizeGrant", back_populates="user")

    @property
    def supervisor_ids(self):
        return sorted(link.supervisor_id for link in self.supervisor_links)

    def __repr__(self):
        return f"<User {self.name} ({self.role.value})>"
