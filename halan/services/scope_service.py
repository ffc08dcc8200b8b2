"""
Scope resolution: which couriers and orders an actor may see or mutate.

Everything here takes an explicit ``ActorContext``; nothing reads the role
or identity from request globals.
"""
from dataclasses import dataclass
from typing import Optional, Set
from sqlalchemy import select, false
from sqlalchemy.orm import Session, Query
from halan.models.user import User, Role
from halan.models.assignment import CourierSupervisor
from halan.models.order import Order, OrderStatus
from halan.exceptions import AuthorizationError, NotFoundError


@dataclass(frozen=True)
class ActorContext:
    role: Role
    id: str

    @property
    def is_manager(self) -> bool:
        return self.role in (Role.OWNER, Role.SUPERVISOR)


def _active_couriers(db: Session) -> Query:
    return db.query(User).filter(User.role == Role.COURIER, User.is_active.is_(True))


def courier_scope_query(db: Session, actor: ActorContext, available_only: bool = True) -> Query:
    """
    Couriers visible to ``actor`` as a query.

    ``available_only`` only narrows the supervisor view; the owner sees every
    courier and the assignment-editing screen passes False so inactive couriers
    stay manageable.
    """
    query = _active_couriers(db)
    if actor.role == Role.OWNER:
        return query
    if actor.role == Role.SUPERVISOR:
        assigned = select(CourierSupervisor.courier_id).where(CourierSupervisor.supervisor_id == actor.id)
        query = query.filter(User.id.in_(assigned))
        if available_only:
            query = query.filter(User.is_available.is_(True))
        return query
    if actor.role == Role.COURIER:
        return query.filter(User.id == actor.id)
    return query.filter(false())


def visible_courier_ids(db: Session, actor: ActorContext, available_only: bool = True) -> Set[str]:
    query = courier_scope_query(db, actor, available_only=available_only)
    return {courier_id for (courier_id,) in query.with_entities(User.id).all()}


def order_scope_query(db: Session, actor: ActorContext, history: bool = False) -> Query:
    """
    Orders visible to ``actor`` as a query.

    Supervisors see what they dispatched, not what their couriers carry.
    Couriers see their own orders; delivered ones only in the history view.
    """
    query = db.query(Order)
    if actor.role == Role.OWNER:
        return query
    if actor.role == Role.SUPERVISOR:
        return query.filter(Order.supervisor_id == actor.id)
    if actor.role == Role.COURIER:
        query = query.filter(Order.courier_id == actor.id)
        if history:
            return query.filter(Order.status == OrderStatus.DELIVERED)
        return query.filter(Order.status != OrderStatus.DELIVERED)
    if actor.role == Role.PROVIDER:
        return query.filter(Order.provider_id == actor.id)
    if actor.role == Role.CUSTOMER:
        return query.filter(Order.customer_id == actor.id)
    return query.filter(false())


def visible_order_ids(db: Session, actor: ActorContext, history: bool = False) -> Set[str]:
    query = order_scope_query(db, actor, history=history)
    return {order_id for (order_id,) in query.with_entities(Order.id).all()}


def order_in_scope(actor: ActorContext, order: Order) -> bool:
    """Same rules as ``order_scope_query`` for one loaded order, both views combined"""
    if actor.role == Role.OWNER:
        return True
    if actor.role == Role.SUPERVISOR:
        return order.supervisor_id == actor.id
    if actor.role == Role.COURIER:
        return order.courier_id == actor.id
    if actor.role == Role.PROVIDER:
        return order.provider_id == actor.id
    if actor.role == Role.CUSTOMER:
        return order.customer_id == actor.id
    return False


def get_order_for_read(db: Session, actor: ActorContext, order_id: str) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    # Out-of-scope orders are reported as missing on reads
    if order is None or not order_in_scope(actor, order):
        raise NotFoundError("Order not found", {"orderId": order_id})
    return order


def get_order_for_update(db: Session, actor: ActorContext, order_id: str) -> Order:
    order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
    if order is None:
        raise NotFoundError("Order not found", {"orderId": order_id})
    if not order_in_scope(actor, order):
        raise AuthorizationError(
            "Order is outside your scope",
            {"orderId": order_id, "role": actor.role.value},
        )
    return order


def get_courier(db: Session, courier_id: str, include_inactive: bool = False) -> User:
    query = db.query(User).filter(User.id == courier_id, User.role == Role.COURIER)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    courier = query.first()
    if courier is None:
        raise NotFoundError("Courier not found", {"courierId": courier_id})
    return courier


def ensure_courier_in_scope(db: Session, actor: ActorContext, courier_id: str,
                            available_only: bool = False) -> User:
    courier = get_courier(db, courier_id)
    if courier_id not in visible_courier_ids(db, actor, available_only=available_only):
        raise AuthorizationError(
            "Courier is outside your scope",
            {"courierId": courier_id, "role": actor.role.value},
        )
    return courier


def scope_or_none(db: Session, actor: ActorContext) -> Optional[Set[str]]:
    """Live-map scope: None means unrestricted (owner)"""
    if actor.role == Role.OWNER:
        return None
    return visible_courier_ids(db, actor, available_only=True)
