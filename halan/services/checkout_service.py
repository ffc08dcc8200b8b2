"""
Checkout: split one multi-provider cart into a bundle of child orders.

Items are grouped by provider, one order per group. A selected prize grant is
applied either across the whole cart (no provider scope) or to its provider's
group only, and is redeemed once for the bundle. Child orders are written in a
single transaction; any failure, including running past the checkout timeout,
rolls back every order of the bundle.
"""
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence
from sqlalchemy.orm import Session
from halan.config import settings
from halan.database import atomic
from halan.exceptions import (
    AppError, AuthorizationError, CheckoutTimeout, ConflictError, NotFoundError,
    PartialBundleFailure, ValidationError,
)
from halan.models.order import Order, OrderStatus, OrderOrigin
from halan.models.prize import PrizeGrant, PrizeType
from halan.models.user import Role
from halan.schemas.checkout import CheckoutItem, CheckoutRequest, CheckoutQuote, ProviderGroupQuote
from halan.services.order_service import (
    dispatch_courier, build_items, generate_order_number, money, pick_least_loaded_courier,
    record_status, recalculate_totals,
)
from halan.services.prize_service import get_user_grant
from halan.services.scope_service import ActorContext

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

# Dispatches made by the platform itself rather than a person
SYSTEM_ACTOR = ActorContext(role=Role.OWNER, id="system")


@dataclass
class ProviderGroup:
    provider_id: str
    items: List[CheckoutItem] = field(default_factory=list)
    discount: Decimal = ZERO
    delivery_fee: Decimal = ZERO

    @property
    def subtotal(self) -> Decimal:
        return money(sum((i.unit_price * i.quantity for i in self.items), Decimal("0")))

    @property
    def total(self) -> Decimal:
        return money(self.subtotal - self.discount + self.delivery_fee)


@dataclass
class Bundle:
    bundle_id: str
    orders: List[Order]
    grant: Optional[PrizeGrant] = None

    def _sum(self, attr: str) -> Decimal:
        return money(sum((Decimal(getattr(o, attr)) for o in self.orders), Decimal("0")))

    @property
    def subtotal(self):
        return self._sum("subtotal")

    @property
    def discount(self):
        return self._sum("discount")

    @property
    def delivery_fee(self):
        return self._sum("delivery_fee")

    @property
    def total(self):
        return self._sum("total")


def split_cart(items: Sequence[CheckoutItem], delivery_fee: Decimal) -> List[ProviderGroup]:
    """One group per provider, in the order providers first appear in the cart"""
    groups: Dict[str, ProviderGroup] = {}
    for item in items:
        group = groups.get(item.provider_id)
        if group is None:
            group = groups[item.provider_id] = ProviderGroup(item.provider_id, delivery_fee=money(delivery_fee))
        group.items.append(item)
    return list(groups.values())


def grant_problem(groups: Sequence[ProviderGroup], grant: PrizeGrant) -> Optional[str]:
    """Why ``grant`` cannot be used on this cart, or None when it can"""
    if grant.is_redeemed:
        return "This prize has already been used"
    if grant.provider_id and not any(g.provider_id == grant.provider_id for g in groups):
        return "This prize only applies to items from another provider"
    return None


def _cart_discount(base: Decimal, grant: PrizeGrant) -> Decimal:
    value = Decimal(grant.prize_value)
    if grant.prize_type == PrizeType.PERCENT_DISCOUNT:
        return min(money(base * value / 100), base)
    if grant.prize_type == PrizeType.FLAT_DISCOUNT:
        return max(min(money(value), base), ZERO)
    return ZERO


def apply_grant(groups: Sequence[ProviderGroup], grant: PrizeGrant) -> None:
    """
    Set discount / delivery fee on each group.

    A global cart discount is shared out in proportion to each group's subtotal.
    Groups with nothing to discount get no share; the largest group absorbs the
    rounding remainder, kept between zero and its own subtotal.
    """
    targets = [g for g in groups if g.provider_id == grant.provider_id] if grant.provider_id else list(groups)

    if grant.prize_type == PrizeType.FREE_DELIVERY:
        for group in targets:
            group.delivery_fee = ZERO
        return

    discountable = [g for g in targets if g.subtotal > 0]
    if not discountable:
        return
    base = money(sum((g.subtotal for g in discountable), Decimal("0")))
    total_discount = _cart_discount(base, grant)
    for group in discountable:
        group.discount = money(total_discount * group.subtotal / base)

    remainder = total_discount - sum((g.discount for g in discountable), Decimal("0"))
    largest = max(discountable, key=lambda g: g.subtotal)
    largest.discount = min(max(largest.discount + remainder, ZERO), largest.subtotal)


def _load_grant(db: Session, actor: ActorContext, grant_id: str, lock: bool = False) -> PrizeGrant:
    grant = get_user_grant(db, actor.id, grant_id, lock=lock)
    if grant is None:
        raise NotFoundError("Prize not found", {"grantId": grant_id})
    return grant


def _require_customer(actor: ActorContext) -> None:
    if actor.role != Role.CUSTOMER:
        raise AuthorizationError("Only customers can check out", {"role": actor.role.value})


def quote(db: Session, actor: ActorContext, payload: CheckoutRequest) -> CheckoutQuote:
    """Preview the split without writing anything; an unusable grant is reported, not applied"""
    _require_customer(actor)
    groups = split_cart(payload.items, settings.DEFAULT_DELIVERY_FEE)

    applicable = None
    message = None
    if payload.grant_id:
        grant = _load_grant(db, actor, payload.grant_id)
        message = grant_problem(groups, grant)
        applicable = message is None
        if applicable:
            apply_grant(groups, grant)

    parts = [
        ProviderGroupQuote(
            provider_id=g.provider_id,
            item_count=sum(i.quantity for i in g.items),
            subtotal=g.subtotal,
            discount=g.discount,
            delivery_fee=g.delivery_fee,
            total=g.total,
        )
        for g in groups
    ]
    return CheckoutQuote(
        groups=parts,
        subtotal=money(sum((p.subtotal for p in parts), Decimal("0"))),
        discount=money(sum((p.discount for p in parts), Decimal("0"))),
        delivery_fee=money(sum((p.delivery_fee for p in parts), Decimal("0"))),
        total=money(sum((p.total for p in parts), Decimal("0"))),
        grant_id=payload.grant_id,
        grant_applicable=applicable,
        grant_message=message,
    )


def _child_order(actor: ActorContext, payload: CheckoutRequest, group: ProviderGroup, bundle_id: str) -> Order:
    order = Order(
        order_number=generate_order_number(),
        status=OrderStatus.PENDING,
        origin=OrderOrigin.CUSTOMER_CHANNEL,
        can_reject=True,
        customer_id=actor.id,
        customer_name=payload.customer_name,
        customer_phone=payload.customer_phone,
        delivery_address=payload.delivery_address,
        delivery_latitude=payload.delivery_latitude,
        delivery_longitude=payload.delivery_longitude,
        provider_id=group.provider_id,
        created_by=actor.id,
        bundle_id=bundle_id,
        delivery_fee=group.delivery_fee,
        discount=group.discount,
        notes=payload.notes,
        items=build_items(group.items),
    )
    recalculate_totals(order)
    return order


def checkout(db: Session, actor: ActorContext, payload: CheckoutRequest,
             clock=time.monotonic, rng=random) -> Bundle:
    """
    Create every child order of the cart, or none of them.

    Validation problems (unknown, used or inapplicable grant) are raised as is.
    Anything that goes wrong while writing is reported as one PartialBundleFailure
    after the rollback.
    """
    _require_customer(actor)
    deadline = clock() + settings.CHECKOUT_TIMEOUT_SECONDS
    bundle_id = str(uuid.uuid4())
    groups = split_cart(payload.items, settings.DEFAULT_DELIVERY_FEE)
    orders: List[Order] = []
    grant = None

    try:
        with atomic(db):
            if payload.grant_id:
                grant = _load_grant(db, actor, payload.grant_id, lock=True)
                problem = grant_problem(groups, grant)
                if problem:
                    error = ConflictError if grant.is_redeemed else ValidationError
                    raise error(problem, details={"grantId": grant.id, "providerId": grant.provider_id})
                apply_grant(groups, grant)

            for group in groups:
                order = _child_order(actor, payload, group, bundle_id)
                db.add(order)
                record_status(db, order, OrderStatus.PENDING, actor.id, "Order placed at checkout")
                db.flush()
                orders.append(order)
                if clock() > deadline:
                    raise CheckoutTimeout(
                        "Checkout took too long and was rolled back, no orders were created",
                        {"bundleId": bundle_id},
                    )

            if grant is not None:
                grant.is_redeemed = True
                grant.redeemed_at = datetime.utcnow()
                grant.bundle_id = bundle_id

            if settings.AUTO_ASSIGN_ON_CHECKOUT:
                for order in orders:
                    courier = pick_least_loaded_courier(db, SYSTEM_ACTOR, rng=rng)
                    if courier is None:
                        break
                    dispatch_courier(db, order, courier, SYSTEM_ACTOR, f"Auto-assigned to {courier.name}")
                    db.flush()
    except AppError:
        raise
    except Exception as exc:
        logger.error(f"Checkout {bundle_id} rolled back: {exc}", exc_info=True)
        raise PartialBundleFailure(
            "Checkout failed and was rolled back, no orders were created",
            {"bundleId": bundle_id},
        ) from exc

    for order in orders:
        db.refresh(order)
    logger.info(
        f"Checkout {bundle_id} by customer {actor.id}: {len(orders)} order(s)"
        + (f", prize {grant.id} redeemed" if grant is not None else "")
    )
    return Bundle(bundle_id=bundle_id, orders=orders, grant=grant)
