from decimal import Decimal
import pytest
from sqlalchemy import event
from halan.config import settings
from halan.exceptions import (
    AuthorizationError, CheckoutTimeout, ConflictError, NotFoundError, PartialBundleFailure, ValidationError,
)
from halan.models import Order, OrderOrigin, OrderStatus, PrizeGrant, PrizeType, Role
from halan.schemas.checkout import CheckoutRequest
from halan.services import checkout_service

PHONE = "+201001234567"
ADDRESS = "12 Nile Street, Zamalek, Cairo"


def cart(*lines, grant_id=None) -> CheckoutRequest:
    return CheckoutRequest(
        customer_name="Mona",
        customer_phone=PHONE,
        delivery_address=ADDRESS,
        items=[
            {"name": name, "unit_price": price, "quantity": qty, "provider_id": provider}
            for provider, name, price, qty in lines
        ],
        grant_id=grant_id,
    )


@pytest.fixture
def grant(db, customer):
    def _grant(prize_type=PrizeType.PERCENT_DISCOUNT, value="15", provider_id=None, user=None) -> PrizeGrant:
        grant = PrizeGrant(
            user_id=(user or customer).id,
            name="Lucky slice",
            prize_type=prize_type,
            prize_value=Decimal(value),
            provider_id=provider_id,
        )
        db.add(grant)
        db.commit()
        db.refresh(grant)
        return grant
    return _grant


def by_provider(bundle):
    return {o.provider_id: o for o in bundle.orders}


def test_scoped_percent_grant_only_discounts_its_provider(db, customer, grant, actor):
    won = grant(PrizeType.PERCENT_DISCOUNT, "15", provider_id="P1")
    bundle = checkout_service.checkout(
        db, actor(customer), cart(("P1", "A", "40", 2), ("P2", "B", "20", 1), grant_id=won.id)
    )

    orders = by_provider(bundle)
    assert len(orders) == 2
    assert orders["P1"].subtotal == Decimal("80.00")
    assert orders["P1"].discount == Decimal("12.00")
    assert orders["P1"].total - orders["P1"].delivery_fee == Decimal("68.00")
    assert orders["P2"].subtotal == Decimal("20.00")
    assert orders["P2"].discount == Decimal("0.00")
    assert {o.bundle_id for o in bundle.orders} == {bundle.bundle_id}

    db.refresh(won)
    assert won.is_redeemed is True
    assert won.bundle_id == bundle.bundle_id


def test_child_orders_are_pending_customer_channel_orders(db, customer, actor):
    bundle = checkout_service.checkout(db, actor(customer), cart(("P1", "A", "40", 1), ("P2", "B", "20", 1)))

    for order in bundle.orders:
        assert order.status == OrderStatus.PENDING
        assert order.origin == OrderOrigin.CUSTOMER_CHANNEL
        assert order.customer_id == customer.id
        assert order.delivery_fee == settings.DEFAULT_DELIVERY_FEE
        assert [h.status for h in order.status_history] == [OrderStatus.PENDING]


def test_items_from_one_provider_stay_together(db, customer, actor):
    bundle = checkout_service.checkout(
        db, actor(customer), cart(("P1", "A", "10", 1), ("P2", "B", "20", 1), ("P1", "C", "5", 4))
    )
    orders = by_provider(bundle)
    assert len(bundle.orders) == 2
    assert [i.name for i in orders["P1"].items] == ["A", "C"]
    assert orders["P1"].subtotal == Decimal("30.00")


def test_global_percent_grant_is_shared_proportionally(db, customer, grant, actor):
    won = grant(PrizeType.PERCENT_DISCOUNT, "10")
    bundle = checkout_service.checkout(
        db, actor(customer), cart(("P1", "A", "40", 2), ("P2", "B", "20", 1), grant_id=won.id)
    )
    orders = by_provider(bundle)
    assert orders["P1"].discount == Decimal("8.00")
    assert orders["P2"].discount == Decimal("2.00")
    assert bundle.discount == Decimal("10.00")


def test_free_gift_provider_gets_no_share_of_a_global_discount(db, customer, grant, actor):
    won = grant(PrizeType.PERCENT_DISCOUNT, "15")
    bundle = checkout_service.checkout(
        db, actor(customer),
        cart(("P1", "A", "10.10", 1), ("P2", "B", "10.10", 1), ("P3", "Gift", "0", 1), grant_id=won.id),
    )
    orders = by_provider(bundle)
    assert all(Decimal("0") <= o.discount <= o.subtotal for o in bundle.orders)
    assert orders["P3"].discount == Decimal("0.00")
    assert orders["P3"].total == orders["P3"].delivery_fee
    assert bundle.discount == Decimal("3.03")


def test_global_flat_grant_never_exceeds_the_cart(db, customer, grant, actor):
    won = grant(PrizeType.FLAT_DISCOUNT, "500")
    bundle = checkout_service.checkout(
        db, actor(customer), cart(("P1", "A", "30", 1), ("P2", "B", "3.33", 3), grant_id=won.id)
    )
    assert bundle.discount == bundle.subtotal == Decimal("39.99")
    for order in bundle.orders:
        assert order.total == order.delivery_fee


def test_free_delivery_waives_only_the_scoped_fee(db, customer, grant, actor):
    won = grant(PrizeType.FREE_DELIVERY, "0", provider_id="P2")
    bundle = checkout_service.checkout(
        db, actor(customer), cart(("P1", "A", "40", 1), ("P2", "B", "20", 1), grant_id=won.id)
    )
    orders = by_provider(bundle)
    assert orders["P2"].delivery_fee == Decimal("0.00")
    assert orders["P1"].delivery_fee == settings.DEFAULT_DELIVERY_FEE
    assert bundle.discount == Decimal("0.00")


def test_grant_for_a_provider_not_in_the_cart_is_rejected(db, customer, grant, actor):
    won = grant(PrizeType.PERCENT_DISCOUNT, "50", provider_id="P9")
    with pytest.raises(ValidationError):
        checkout_service.checkout(
            db, actor(customer), cart(("P1", "A", "40", 2), ("P2", "B", "20", 1), grant_id=won.id)
        )

    assert db.query(Order).count() == 0
    db.refresh(won)
    assert won.is_redeemed is False


def test_quote_reports_an_inapplicable_grant_instead_of_spending_it(db, customer, grant, actor):
    won = grant(PrizeType.PERCENT_DISCOUNT, "50", provider_id="P9")
    preview = checkout_service.quote(db, actor(customer), cart(("P1", "A", "40", 2), grant_id=won.id))

    assert preview.grant_applicable is False
    assert preview.discount == Decimal("0.00")
    assert preview.subtotal == Decimal("80.00")
    assert db.query(Order).count() == 0


def test_a_grant_is_spent_only_once(db, customer, grant, actor):
    won = grant(PrizeType.FLAT_DISCOUNT, "5")
    checkout_service.checkout(db, actor(customer), cart(("P1", "A", "40", 1), grant_id=won.id))

    with pytest.raises(ConflictError):
        checkout_service.checkout(db, actor(customer), cart(("P1", "A", "40", 1), grant_id=won.id))
    assert db.query(Order).count() == 1


def test_someone_elses_grant_is_not_found(db, customer, make_user, grant, actor):
    other = make_user(Role.CUSTOMER)
    theirs = grant(user=other)
    with pytest.raises(NotFoundError):
        checkout_service.checkout(db, actor(customer), cart(("P1", "A", "40", 1), grant_id=theirs.id))


def test_failure_on_last_insert_leaves_no_orders(db, customer, grant, actor):
    won = grant(PrizeType.PERCENT_DISCOUNT, "10")
    inserted = []

    def fail_on_third(mapper, connection, target):
        inserted.append(target.provider_id)
        if len(inserted) == 3:
            raise RuntimeError("disk full")

    event.listen(Order, "before_insert", fail_on_third)
    try:
        with pytest.raises(PartialBundleFailure):
            checkout_service.checkout(
                db, actor(customer),
                cart(("P1", "A", "10", 1), ("P2", "B", "10", 1), ("P3", "C", "10", 1), grant_id=won.id),
            )
    finally:
        event.remove(Order, "before_insert", fail_on_third)

    assert len(inserted) == 3
    assert db.query(Order).count() == 0
    db.refresh(won)
    assert won.is_redeemed is False
    assert won.bundle_id is None


def test_timeout_mid_checkout_rolls_back(db, customer, actor, monkeypatch):
    monkeypatch.setattr(settings, "CHECKOUT_TIMEOUT_SECONDS", 10.0)
    ticks = iter([0.0, 5.0, 50.0])

    with pytest.raises(CheckoutTimeout):
        checkout_service.checkout(
            db, actor(customer), cart(("P1", "A", "10", 1), ("P2", "B", "10", 1)),
            clock=lambda: next(ticks),
        )
    assert db.query(Order).count() == 0


def test_only_customers_check_out(db, owner, actor):
    with pytest.raises(AuthorizationError):
        checkout_service.checkout(db, actor(owner), cart(("P1", "A", "10", 1)))


def test_children_can_be_auto_assigned(db, customer, make_user, actor, monkeypatch):
    monkeypatch.setattr(settings, "AUTO_ASSIGN_ON_CHECKOUT", True)
    first = make_user(Role.COURIER, "First")
    second = make_user(Role.COURIER, "Second")

    bundle = checkout_service.checkout(db, actor(customer), cart(("P1", "A", "10", 1), ("P2", "B", "10", 1)))

    assert {o.status for o in bundle.orders} == {OrderStatus.ASSIGNED}
    assert {o.courier_id for o in bundle.orders} == {first.id, second.id}
