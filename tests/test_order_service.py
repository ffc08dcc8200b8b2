import random
from decimal import Decimal
import pytest
from halan.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from halan.models import Order, OrderStatus, OrderOrigin, Role
from halan.schemas.order import OrderUpdate
from halan.services import order_service


def test_new_order_starts_pending_with_history(db, owner, make_order, actor):
    order = make_order(owner)

    assert order.status == OrderStatus.PENDING
    assert order.courier_id is None
    assert order.can_reject is False
    assert order.subtotal == Decimal("80.00")
    assert order.total == Decimal("90.00")
    assert [h.status for h in order.status_history] == [OrderStatus.PENDING]


def test_naming_a_courier_dispatches_and_attributes_supervisor(db, supervisor, courier, make_order):
    order = make_order(supervisor, courier_id=courier.id)

    assert order.status == OrderStatus.ASSIGNED
    assert order.courier_id == courier.id
    assert order.supervisor_id == supervisor.id
    assert [h.status for h in order.status_history] == [OrderStatus.PENDING, OrderStatus.ASSIGNED]


def test_courier_created_order_is_carried_by_that_courier(db, courier, make_order):
    order = make_order(courier)

    assert order.courier_id == courier.id
    assert order.status == OrderStatus.ASSIGNED


def test_customer_cannot_create_manual_orders(customer, make_order):
    with pytest.raises(AuthorizationError):
        make_order(customer)


def test_supervisor_cannot_dispatch_unassigned_courier(db, supervisor, make_user, make_order):
    stranger = make_user(Role.COURIER)
    with pytest.raises(AuthorizationError):
        make_order(supervisor, courier_id=stranger.id)
    assert db.query(Order).count() == 0


def test_edit_flags_order_and_keeps_status(db, supervisor, courier, make_order, actor):
    order = make_order(supervisor, courier_id=courier.id)

    patch = OrderUpdate(
        delivery_address="44 Tahrir Square, Downtown",
        items=[{"name": "Feteer", "quantity": 3, "unit_price": "25.00"}],
    )
    edited = order_service.update_order(db, actor(supervisor), order.id, patch)

    assert edited.is_edited is True
    assert edited.status == OrderStatus.ASSIGNED
    assert edited.delivery_address == "44 Tahrir Square, Downtown"
    assert edited.subtotal == Decimal("75.00")
    assert edited.total == Decimal("85.00")


def test_edit_is_rejected_once_terminal(db, owner, make_order, actor):
    order = make_order(owner)
    order_service.cancel_order(db, actor(owner), order.id, "Customer changed their mind")

    with pytest.raises(ConflictError) as excinfo:
        order_service.update_order(db, actor(owner), order.id, OrderUpdate(notes="late"))
    assert excinfo.value.details["currentStatus"] == "cancelled"


def test_empty_patch_is_a_validation_error(db, owner, make_order, actor):
    order = make_order(owner)
    with pytest.raises(ValidationError):
        order_service.update_order(db, actor(owner), order.id, OrderUpdate())


def test_courier_can_only_be_cleared_while_pending(db, owner, courier, make_order, actor):
    order = make_order(owner, courier_id=courier.id)
    with pytest.raises(ConflictError):
        order_service.update_order(db, actor(owner), order.id, OrderUpdate(courier_id=None))


def test_delete_only_before_terminal(db, owner, make_order, actor):
    pending = make_order(owner)
    order_service.delete_order(db, actor(owner), pending.id)
    assert db.query(Order).filter(Order.id == pending.id).first() is None

    cancelled = make_order(owner)
    order_service.cancel_order(db, actor(owner), cancelled.id)
    with pytest.raises(ConflictError):
        order_service.delete_order(db, actor(owner), cancelled.id)


def test_couriers_cannot_delete(db, courier, make_order, actor):
    order = make_order(courier)
    with pytest.raises(AuthorizationError):
        order_service.delete_order(db, actor(courier), order.id)


def test_full_delivery_run(db, supervisor, courier, make_order, actor):
    order = make_order(supervisor, courier_id=courier.id)
    order_service.change_status(db, actor(supervisor), order.id, OrderStatus.READY_FOR_PICKUP)
    for status in (OrderStatus.PICKED_UP, OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED):
        order = order_service.change_status(db, actor(courier), order.id, status)

    assert order.status == OrderStatus.DELIVERED
    assert order.delivered_at is not None
    assert [h.status for h in order_service.status_history(db, actor(supervisor), order.id)] == list(
        order_service.lifecycle.HAPPY_PATH
    )


def test_skipping_ahead_is_a_conflict(db, owner, courier, make_order, actor):
    order = make_order(owner, courier_id=courier.id)
    with pytest.raises(ConflictError) as excinfo:
        order_service.change_status(db, actor(owner), order.id, OrderStatus.DELIVERED)
    assert excinfo.value.details["allowedStatuses"] == ["cancelled", "ready_for_pickup"]


def test_assigned_requires_a_courier(db, owner, make_order, actor):
    order = make_order(owner)
    with pytest.raises(ConflictError):
        order_service.change_status(db, actor(owner), order.id, OrderStatus.ASSIGNED)


def test_provider_cannot_cancel_manual_order(db, make_user, make_order, actor):
    provider = make_user(Role.PROVIDER)
    manual = make_order(provider)
    with pytest.raises(AuthorizationError):
        order_service.cancel_order(db, actor(provider), manual.id)

    channel = make_order(provider, origin=OrderOrigin.CUSTOMER_CHANNEL)
    cancelled = order_service.cancel_order(db, actor(provider), channel.id, "Out of stock")
    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.cancelled_reason == "Out of stock"


def test_assign_courier_moves_pending_to_assigned(db, supervisor, courier, make_order, actor):
    order = make_order(supervisor)
    order = order_service.assign_courier(db, actor(supervisor), order.id, courier.id)

    assert order.status == OrderStatus.ASSIGNED
    assert order.courier_name == courier.name


def test_auto_assign_prefers_least_loaded_courier(db, owner, make_user, make_order, actor):
    busy = make_user(Role.COURIER, "Busy")
    idle = make_user(Role.COURIER, "Idle")
    make_order(owner, courier_id=busy.id)

    order = make_order(owner)
    order = order_service.auto_assign_courier(db, actor(owner), order.id, rng=random.Random(1))
    assert order.courier_id == idle.id
    assert order.status == OrderStatus.ASSIGNED


def test_auto_assign_respects_capacity(db, owner, make_user, make_order, actor):
    full = make_user(Role.COURIER, max_active_orders=1)
    make_order(owner, courier_id=full.id)

    order = make_order(owner)
    with pytest.raises(NotFoundError):
        order_service.auto_assign_courier(db, actor(owner), order.id)


def test_list_orders_by_phase(db, owner, courier, make_order, actor):
    waiting = make_order(owner)
    moving = make_order(owner, courier_id=courier.id)
    order_service.change_status(db, actor(owner), moving.id, OrderStatus.READY_FOR_PICKUP)
    order_service.change_status(db, actor(owner), moving.id, OrderStatus.PICKED_UP)

    ids = lambda query: {o.id for o in query.all()}
    assert ids(order_service.list_orders(db, actor(owner), phase="waiting")) == {waiting.id}
    assert ids(order_service.list_orders(db, actor(owner), phase="delivering")) == {moving.id}
    assert ids(order_service.list_orders(db, actor(owner), search="Mona")) == {waiting.id, moving.id}
    with pytest.raises(ValidationError):
        order_service.list_orders(db, actor(owner), phase="lost")
