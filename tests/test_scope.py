import itertools
import pytest
from halan.exceptions import AuthorizationError, NotFoundError
from halan.models import OrderStatus, Role
from halan.services import assignment_service, order_service
from halan.services.scope_service import (
    get_order_for_read, get_order_for_update, visible_courier_ids, visible_order_ids,
)


def test_supervisor_sees_exactly_assigned_available_couriers(db, make_user, assign, actor):
    supervisors = [make_user(Role.SUPERVISOR) for _ in range(3)]
    couriers = [make_user(Role.COURIER, is_available=(i % 3 != 0)) for i in range(6)]
    links = set()
    for (i, courier), (j, supervisor) in itertools.product(enumerate(couriers), enumerate(supervisors)):
        if (i + j) % 2 == 0:
            assign(courier, supervisor)
            links.add((courier.id, supervisor.id))

    for supervisor, courier in itertools.product(supervisors, couriers):
        linked = (courier.id, supervisor.id) in links
        assert (courier.id in visible_courier_ids(db, actor(supervisor), available_only=False)) == linked
        assert (courier.id in visible_courier_ids(db, actor(supervisor))) == (linked and courier.is_available)


def test_owner_sees_every_active_courier(db, owner, make_user, actor):
    kept = make_user(Role.COURIER, is_available=False)
    removed = make_user(Role.COURIER)
    assignment_service.remove_courier(db, actor(owner), removed.id)

    visible = visible_courier_ids(db, actor(owner))
    assert kept.id in visible
    assert removed.id not in visible


def test_courier_only_sees_itself(db, courier, make_user, actor):
    other = make_user(Role.COURIER)
    assert visible_courier_ids(db, actor(courier)) == {courier.id}
    assert other.id not in visible_courier_ids(db, actor(courier))


def test_customer_sees_no_couriers(db, courier, customer, actor):
    assert visible_courier_ids(db, actor(customer)) == set()


def test_supervisor_order_scope_follows_dispatching_supervisor(db, owner, supervisor, courier, make_order, actor):
    own = make_order(supervisor, courier_id=courier.id)
    # Same courier, but dispatched by the owner
    by_owner = make_order(owner, courier_id=courier.id)

    visible = visible_order_ids(db, actor(supervisor))
    assert own.id in visible
    assert by_owner.id not in visible
    assert own.supervisor_id == supervisor.id


def test_courier_active_view_hides_delivered_orders(db, supervisor, courier, make_order, actor):
    active = make_order(supervisor, courier_id=courier.id)
    done = make_order(supervisor, courier_id=courier.id)
    for status in (OrderStatus.READY_FOR_PICKUP, OrderStatus.PICKED_UP, OrderStatus.IN_TRANSIT,
                   OrderStatus.DELIVERED):
        order_service.change_status(db, actor(supervisor), done.id, status)

    assert visible_order_ids(db, actor(courier)) == {active.id}
    assert visible_order_ids(db, actor(courier), history=True) == {done.id}


def test_out_of_scope_reads_look_missing_and_mutations_are_forbidden(db, owner, supervisor, make_order, actor):
    order = make_order(owner)

    with pytest.raises(NotFoundError):
        get_order_for_read(db, actor(supervisor), order.id)
    with pytest.raises(AuthorizationError):
        get_order_for_update(db, actor(supervisor), order.id)
    db.rollback()


def test_assignment_is_idempotent_and_owner_only(db, owner, supervisor, make_user, actor):
    courier = make_user(Role.COURIER)
    assert assignment_service.set_assignment(db, actor(owner), courier.id, supervisor.id, "add") is True
    assert assignment_service.set_assignment(db, actor(owner), courier.id, supervisor.id, "add") is False
    assert visible_courier_ids(db, actor(supervisor)) == {courier.id}

    with pytest.raises(AuthorizationError):
        assignment_service.set_assignment(db, actor(supervisor), courier.id, supervisor.id, "remove")

    assert assignment_service.set_assignment(db, actor(owner), courier.id, supervisor.id, "remove") is True
    assert assignment_service.set_assignment(db, actor(owner), courier.id, supervisor.id, "remove") is False
    assert visible_courier_ids(db, actor(supervisor)) == set()


def test_supervisor_can_reenable_an_unavailable_assigned_courier(db, supervisor, courier, actor):
    assignment_service.set_availability(db, actor(courier), courier.id, False)
    assert courier.id not in visible_courier_ids(db, actor(supervisor))

    assignment_service.set_availability(db, actor(supervisor), courier.id, True)
    assert courier.id in visible_courier_ids(db, actor(supervisor))


def test_courier_cannot_toggle_someone_else(db, courier, make_user, actor):
    other = make_user(Role.COURIER)
    with pytest.raises(AuthorizationError):
        assignment_service.set_availability(db, actor(courier), other.id, False)


def test_removing_a_courier_drops_assignments(db, owner, supervisor, courier, actor):
    assignment_service.remove_courier(db, actor(owner), courier.id)
    db.refresh(courier)

    assert courier.is_active is False
    assert courier.supervisor_ids == []
    with pytest.raises(NotFoundError):
        assignment_service.set_assignment(db, actor(owner), courier.id, supervisor.id, "add")
