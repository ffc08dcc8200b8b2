from halan.models.user import User, Role
from halan.models.assignment import CourierSupervisor
from halan.models.order import Order, OrderItem, OrderStatus, OrderOrigin
from halan.models.order_status_history import OrderStatusHistory
from halan.models.prize import Prize, PrizeGrant, PrizeType

__all__ = [
    "User",
    "Role",
    "CourierSupervisor",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderOrigin",
    "OrderStatusHistory",
    "Prize",
    "PrizeGrant",
    "PrizeType",
]
