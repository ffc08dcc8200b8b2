from pydantic import BaseModel
from typing import List, Literal, Optional
from datetime import datetime


class CourierResponse(BaseModel):
    id: str
    name: str
    phone: Optional[str] = None
    is_available: bool
    is_active: bool
    max_active_orders: Optional[int] = None
    supervisor_ids: List[str] = []
    active_orders: int = 0
    created_at: datetime

    class Config:
        from_attributes = True


class AssignmentRequest(BaseModel):
    courier_id: str
    supervisor_id: str
    action: Literal["add", "remove"]


class AvailabilityUpdate(BaseModel):
    is_available: bool
