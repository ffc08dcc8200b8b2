from sqlalchemy import Column, String, Numeric, Boolean, DateTime, ForeignKey, Integer
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
import enum
from halan.database import Base
from halan.models.types import EnumValue


class PrizeType(str, enum.Enum):
    PERCENT_DISCOUNT = "percent_discount"
    FLAT_DISCOUNT = "flat_discount"
    FREE_DELIVERY = "free_delivery"


class Prize(Base):
    """A slice of the prize wheel, configured by the owner"""
    __tablename__ = "wheel_prizes"

    # Autoincrement keeps the wheel order stable (insertion order)
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    prize_type = Column(EnumValue(PrizeType), nullable=False)
    prize_value = Column(Numeric(10, 2), default=0, nullable=False)
    provider_id = Column(String(36), nullable=True)  # None = any provider
    weight = Column(Numeric(10, 2), default=10, nullable=False)
    color = Column(String(20), default="#f44336", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    grants = relationship("PrizeGrant", back_populates="prize")


class PrizeGrant(Base):
    """
    A prize won by one user.

    The prize terms are copied at win time so later edits or deactivation of the
    wheel slice never change what the user is owed.
    """
    __tablename__ = "user_prizes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    prize_id = Column(Integer, ForeignKey("wheel_prizes.id", ondelete="SET NULL"), nullable=True)

    name = Column(String(255), nullable=False)
    prize_type = Column(EnumValue(PrizeType), nullable=False)
    prize_value = Column(Numeric(10, 2), nullable=False)
    provider_id = Column(String(36), nullable=True)

    is_redeemed = Column(Boolean, default=False, nullable=False)
    redeemed_at = Column(DateTime, nullable=True)
    bundle_id = Column(String(36), nullable=True, index=True)
    won_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="prize_grants")
    prize = relationship("Prize", back_populates="grants")
