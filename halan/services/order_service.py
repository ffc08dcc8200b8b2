"""
Order lifecycle operations: create, edit, delete, status changes and
courier dispatch. Every status change goes through ``lifecycle`` and is
written to the status history.
"""
import logging
import random
import string
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from halan.config import settings
from halan.database import atomic
from halan.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from halan.models.order import Order, OrderItem, OrderStatus, OrderOrigin
from halan.models.order_status_history import OrderStatusHistory
from halan.models.user import User, Role
from halan.schemas.order import OrderCreate, OrderUpdate, OrderItemCreate
from halan.services import lifecycle
from halan.services.scope_service import (
    ActorContext,
    courier_scope_query,
    ensure_courier_in_scope,
    get_order_for_read,
    get_order_for_update,
    order_scope_query,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Statuses that count against a courier's capacity
ACTIVE_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.ASSIGNED,
    OrderStatus.READY_FOR_PICKUP,
    OrderStatus.PICKED_UP,
    OrderStatus.IN_TRANSIT,
)


def generate_order_number() -> str:
    """Generate unique order number"""
    timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
    random_str = ''.join(random.choices(string.ascii_uppercase + string.digits, k=6))
    return f"HLN{timestamp}{random_str}"


def money(value) -> Decimal:
    return Decimal(value).quantize(CENT)


def build_items(items: Iterable[OrderItemCreate]) -> List[OrderItem]:
    return [
        OrderItem(
            position=position,
            name=item.name,
            quantity=item.quantity,
            unit_price=money(item.unit_price),
            provider_id=item.provider_id,
            product_id=item.product_id,
        )
        for position, item in enumerate(items)
    ]


def items_subtotal(items: Iterable) -> Decimal:
    return money(sum((Decimal(i.unit_price) * i.quantity for i in items), Decimal("0")))


def recalculate_totals(order: Order) -> None:
    order.subtotal = items_subtotal(order.items)
    # An edit can shrink the basket below a discount granted at checkout
    order.discount = min(money(order.discount or 0), order.subtotal)
    order.total = money(order.subtotal - order.discount + money(order.delivery_fee or 0))


def record_status(db: Session, order: Order, status: OrderStatus, actor_id: Optional[str],
                  notes: Optional[str] = None) -> None:
    db.add(OrderStatusHistory(order=order, status=status, changed_by=actor_id, notes=notes))


def _apply_transition(db: Session, order: Order, requested: OrderStatus, actor: ActorContext,
                      notes: Optional[str] = None) -> None:
    lifecycle.ensure_transition(order.status, requested)
    previous = order.status
    order.status = requested
    if requested == OrderStatus.DELIVERED:
        order.delivered_at = datetime.utcnow()
    elif requested == OrderStatus.CANCELLED:
        order.cancelled_at = datetime.utcnow()
        order.cancelled_reason = notes
    record_status(db, order, requested, actor.id, notes or f"{previous.value} -> {requested.value}")
    logger.info(f"Order {order.order_number}: {previous.value} -> {requested.value} by {actor.role.value} {actor.id}")


def dispatch_courier(db: Session, order: Order, courier: User, actor: ActorContext,
                     notes: Optional[str] = None) -> None:
    """Attach ``courier`` and move a pending order to assigned"""
    order.courier_id = courier.id
    if actor.role == Role.SUPERVISOR:
        order.supervisor_id = actor.id
    if order.status == OrderStatus.PENDING:
        _apply_transition(db, order, OrderStatus.ASSIGNED, actor, notes or f"Assigned to {courier.name}")
    else:
        record_status(db, order, order.status, actor.id, notes or f"Courier changed to {courier.name}")


def _resolve_courier_for(db: Session, actor: ActorContext, courier_id: str) -> User:
    if actor.role not in (Role.OWNER, Role.SUPERVISOR):
        raise AuthorizationError("Only owners and supervisors can dispatch couriers", {"role": actor.role.value})
    # Supervisors can only dispatch couriers that are on shift
    return ensure_courier_in_scope(db, actor, courier_id, available_only=actor.role == Role.SUPERVISOR)


def _get_supervisor(db: Session, supervisor_id: str) -> User:
    supervisor = (
        db.query(User)
        .filter(User.id == supervisor_id, User.role == Role.SUPERVISOR, User.is_active.is_(True))
        .first()
    )
    if supervisor is None:
        raise NotFoundError("Supervisor not found", {"supervisorId": supervisor_id})
    return supervisor


def create_order(db: Session, actor: ActorContext, payload: OrderCreate) -> Order:
    """
    Create a manual order. It always starts at pending; naming a courier
    dispatches it right away in the same transaction.
    """
    if actor.role not in (Role.OWNER, Role.SUPERVISOR, Role.COURIER, Role.PROVIDER):
        raise AuthorizationError("Your role cannot create delivery orders", {"role": actor.role.value})

    with atomic(db):
        supervisor_id = None
        if actor.role == Role.SUPERVISOR:
            supervisor_id = actor.id
        elif actor.role == Role.OWNER and payload.supervisor_id:
            supervisor_id = _get_supervisor(db, payload.supervisor_id).id

        courier = None
        if actor.role == Role.COURIER:
            # A courier creating an order carries it
            if payload.courier_id and payload.courier_id != actor.id:
                raise AuthorizationError("Couriers can only create orders for themselves")
            courier = ensure_courier_in_scope(db, actor, actor.id)
        elif payload.courier_id:
            courier = _resolve_courier_for(db, actor, payload.courier_id)

        order = Order(
            order_number=generate_order_number(),
            status=OrderStatus.PENDING,
            origin=payload.origin,
            can_reject=payload.origin != OrderOrigin.MANUAL,
            customer_name=payload.customer_name,
            customer_phone=payload.customer_phone,
            delivery_address=payload.delivery_address,
            delivery_latitude=payload.delivery_latitude,
            delivery_longitude=payload.delivery_longitude,
            provider_id=actor.id if actor.role == Role.PROVIDER else payload.provider_id,
            supervisor_id=supervisor_id,
            created_by=actor.id,
            delivery_fee=money(payload.delivery_fee),
            discount=Decimal("0.00"),
            notes=payload.notes,
            items=build_items(payload.items),
        )
        recalculate_totals(order)
        db.add(order)
        record_status(db, order, OrderStatus.PENDING, actor.id, "Order created")
        if courier is not None:
            dispatch_courier(db, order, courier, actor)

    db.refresh(order)
    logger.info(f"Order {order.order_number} created by {actor.role.value} {actor.id}")
    return order


def update_order(db: Session, actor: ActorContext, order_id: str, patch: OrderUpdate) -> Order:
    """
    Edit a non-terminal order. Status is never touched here; a successful edit
    flags the order as edited.
    """
    if not actor.is_manager:
        raise AuthorizationError("Only owners and supervisors can edit orders", {"role": actor.role.value})

    changes = patch.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("Nothing to update")
    for field in ("customer_name", "customer_phone", "delivery_address", "delivery_fee", "items"):
        if field in changes and changes[field] is None:
            raise ValidationError(f"{field} cannot be null")
    if "items" in changes and not patch.items:
        raise ValidationError("An order needs at least one item")

    with atomic(db):
        order = get_order_for_update(db, actor, order_id)
        lifecycle.ensure_editable(order.status)

        if "supervisor_id" in changes:
            if actor.role != Role.OWNER:
                raise AuthorizationError("Only the owner can re-attribute an order to another supervisor")
            supervisor_id = changes.pop("supervisor_id")
            order.supervisor_id = _get_supervisor(db, supervisor_id).id if supervisor_id else None

        if "courier_id" in changes:
            courier_id = changes.pop("courier_id")
            if courier_id is None:
                if order.status != OrderStatus.PENDING:
                    raise ConflictError(
                        "A courier can only be removed while the order is pending",
                        current_status=order.status,
                    )
                order.courier_id = None
            elif courier_id != order.courier_id:
                courier = _resolve_courier_for(db, actor, courier_id)
                order.courier_id = courier.id
                if actor.role == Role.SUPERVISOR:
                    order.supervisor_id = actor.id

        if "items" in changes:
            changes.pop("items")
            order.items = build_items(patch.items)

        if "delivery_fee" in changes:
            order.delivery_fee = money(changes.pop("delivery_fee"))

        for field, value in changes.items():
            setattr(order, field, value)

        recalculate_totals(order)
        order.is_edited = True

    db.refresh(order)
    logger.info(f"Order {order.order_number} edited by {actor.role.value} {actor.id}")
    return order


def delete_order(db: Session, actor: ActorContext, order_id: str) -> None:
    if not actor.is_manager:
        raise AuthorizationError("Only owners and supervisors can delete orders", {"role": actor.role.value})
    with atomic(db):
        order = get_order_for_update(db, actor, order_id)
        if lifecycle.is_terminal(order.status):
            raise ConflictError(
                f"Order is '{order.status.value}' and is kept for the record",
                current_status=order.status,
            )
        order_number = order.order_number
        db.delete(order)
    logger.info(f"Order {order_number} deleted by {actor.role.value} {actor.id}")


def change_status(db: Session, actor: ActorContext, order_id: str, requested: OrderStatus,
                  notes: Optional[str] = None) -> Order:
    with atomic(db):
        order = get_order_for_update(db, actor, order_id)
        lifecycle.ensure_role_may_set(actor.role, requested, can_reject=order.can_reject)
        if requested == OrderStatus.ASSIGNED and order.courier_id is None:
            raise ConflictError(
                "Assign a courier to move the order to 'assigned'",
                current_status=order.status,
                requested_status=requested,
            )
        _apply_transition(db, order, requested, actor, notes)
    db.refresh(order)
    return order


def cancel_order(db: Session, actor: ActorContext, order_id: str, reason: Optional[str] = None) -> Order:
    return change_status(db, actor, order_id, OrderStatus.CANCELLED, reason)


def assign_courier(db: Session, actor: ActorContext, order_id: str, courier_id: str) -> Order:
    with atomic(db):
        order = get_order_for_update(db, actor, order_id)
        lifecycle.ensure_editable(order.status)
        courier = _resolve_courier_for(db, actor, courier_id)
        dispatch_courier(db, order, courier, actor)
    db.refresh(order)
    return order


def active_order_counts(db: Session, courier_ids: Iterable[str]) -> dict:
    courier_ids = list(courier_ids)
    if not courier_ids:
        return {}
    rows = (
        db.query(Order.courier_id, func.count(Order.id))
        .filter(Order.courier_id.in_(courier_ids), Order.status.in_(ACTIVE_STATUSES))
        .group_by(Order.courier_id)
        .all()
    )
    counts = {courier_id: 0 for courier_id in courier_ids}
    counts.update({courier_id: count for courier_id, count in rows})
    return counts


def pick_least_loaded_courier(db: Session, actor: ActorContext, rng=random) -> Optional[User]:
    """
    Available couriers in the actor's scope with spare capacity; random pick
    among those carrying the fewest active orders.
    """
    couriers = courier_scope_query(db, actor, available_only=True).filter(User.is_available.is_(True)).all()
    counts = active_order_counts(db, [c.id for c in couriers])
    candidates = [
        c for c in couriers
        if counts[c.id] < (c.max_active_orders or settings.DEFAULT_MAX_ACTIVE_ORDERS)
    ]
    if not candidates:
        return None
    lowest = min(counts[c.id] for c in candidates)
    return rng.choice([c for c in candidates if counts[c.id] == lowest])


def auto_assign_courier(db: Session, actor: ActorContext, order_id: str, rng=random) -> Order:
    if not actor.is_manager:
        raise AuthorizationError("Only owners and supervisors can dispatch couriers", {"role": actor.role.value})
    with atomic(db):
        order = get_order_for_update(db, actor, order_id)
        if order.status != OrderStatus.PENDING:
            raise ConflictError(
                "Only pending orders can be auto-assigned",
                current_status=order.status,
                requested_status=OrderStatus.ASSIGNED,
            )
        courier = pick_least_loaded_courier(db, actor, rng=rng)
        if courier is None:
            raise NotFoundError("No available courier with spare capacity")
        dispatch_courier(db, order, courier, actor, f"Auto-assigned to {courier.name}")
    db.refresh(order)
    return order


def list_orders(db: Session, actor: ActorContext, status: Optional[str] = None, phase: Optional[str] = None,
                edited: Optional[bool] = None, courier_id: Optional[str] = None,
                supervisor_id: Optional[str] = None, origin: Optional[OrderOrigin] = None,
                bundle_id: Optional[str] = None, search: Optional[str] = None, history: bool = False):
    query = order_scope_query(db, actor, history=history)

    if status and status != "all":
        try:
            query = query.filter(Order.status == OrderStatus(status))
        except ValueError:
            raise ValidationError(f"Unknown status '{status}'", {"allowed": [s.value for s in OrderStatus]})
    if phase:
        if phase not in lifecycle.PHASES:
            raise ValidationError(f"Unknown phase '{phase}'", {"allowed": sorted(lifecycle.PHASES)})
        query = query.filter(Order.status.in_(lifecycle.PHASES[phase]))
    if edited is not None:
        query = query.filter(Order.is_edited.is_(edited))
    if courier_id:
        query = query.filter(Order.courier_id == courier_id)
    if supervisor_id:
        query = query.filter(Order.supervisor_id == supervisor_id)
    if origin:
        query = query.filter(Order.origin == origin)
    if bundle_id:
        query = query.filter(Order.bundle_id == bundle_id)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Order.customer_name.ilike(term),
                Order.customer_phone.ilike(term),
                Order.delivery_address.ilike(term),
                Order.order_number.ilike(term),
            )
        )

    return query.order_by(Order.created_at.desc(), Order.order_number.desc())


def status_history(db: Session, actor: ActorContext, order_id: str) -> List[OrderStatusHistory]:
    return list(get_order_for_read(db, actor, order_id).status_history)
