from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from halan.database import Base


class CourierSupervisor(Base):
    """Many-to-many link between couriers and the supervisors managing them"""
    __tablename__ = "courier_supervisors"

    courier_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    supervisor_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    courier = relationship("User", foreign_keys=[courier_id], back_populates="supervisor_links")
    supervisor = relationship("User", foreign_keys=[supervisor_id])
