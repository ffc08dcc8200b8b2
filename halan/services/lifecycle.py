"""
Order status machine.

    pending -> assigned -> ready_for_pickup -> picked_up -> in_transit -> delivered

``cancelled`` is reachable from every non-terminal status. ``delivered`` and
``cancelled`` are terminal. Nothing ever moves backwards.
"""
from typing import Dict, FrozenSet
from halan.models.order import OrderStatus
from halan.models.user import Role
from halan.exceptions import ConflictError, AuthorizationError

HAPPY_PATH = (
    OrderStatus.PENDING,
    OrderStatus.ASSIGNED,
    OrderStatus.READY_FOR_PICKUP,
    OrderStatus.PICKED_UP,
    OrderStatus.IN_TRANSIT,
    OrderStatus.DELIVERED,
)

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# Dashboard groupings; the underlying statuses stay distinct
PHASES: Dict[str, FrozenSet[OrderStatus]] = {
    "waiting": frozenset({OrderStatus.PENDING, OrderStatus.ASSIGNED}),
    "delivering": frozenset({OrderStatus.PICKED_UP, OrderStatus.IN_TRANSIT}),
}


def _build_transitions() -> Dict[OrderStatus, FrozenSet[OrderStatus]]:
    transitions = {}
    for current, following in zip(HAPPY_PATH, HAPPY_PATH[1:]):
        transitions[current] = frozenset({following, OrderStatus.CANCELLED})
    for terminal in TERMINAL_STATUSES:
        transitions[terminal] = frozenset()
    missing = set(OrderStatus) - set(transitions)
    if missing:
        raise RuntimeError(f"Order statuses without transition rules: {sorted(s.value for s in missing)}")
    return transitions


TRANSITIONS = _build_transitions()

# Statuses each role may move an order into. Owners and supervisors may drive
# any legal transition; provider cancellation is further limited by can_reject.
ROLE_TARGETS: Dict[Role, FrozenSet[OrderStatus]] = {
    Role.OWNER: frozenset(OrderStatus),
    Role.SUPERVISOR: frozenset(OrderStatus),
    Role.COURIER: frozenset({OrderStatus.PICKED_UP, OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED}),
    Role.PROVIDER: frozenset({OrderStatus.READY_FOR_PICKUP, OrderStatus.CANCELLED}),
    Role.CUSTOMER: frozenset(),
}


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def allowed_transitions(status: OrderStatus) -> FrozenSet[OrderStatus]:
    return TRANSITIONS[status]


def ensure_transition(current: OrderStatus, requested: OrderStatus) -> None:
    """Raise ConflictError unless ``current -> requested`` is a legal step"""
    if requested not in TRANSITIONS[current]:
        allowed = sorted(s.value for s in TRANSITIONS[current])
        raise ConflictError(
            f"Cannot move order from '{current.value}' to '{requested.value}'. "
            "Re-fetch the order before retrying.",
            current_status=current,
            requested_status=requested,
            details={"allowedStatuses": allowed},
        )


def ensure_editable(current: OrderStatus) -> None:
    if is_terminal(current):
        raise ConflictError(
            f"Order is '{current.value}' and can no longer be changed",
            current_status=current,
        )


def ensure_role_may_set(role: Role, requested: OrderStatus, can_reject: bool = True) -> None:
    if requested not in ROLE_TARGETS[role]:
        raise AuthorizationError(
            f"Role '{role.value}' cannot set status '{requested.value}'",
            {"role": role.value, "requestedStatus": requested.value},
        )
    if role == Role.PROVIDER and requested == OrderStatus.CANCELLED and not can_reject:
        raise AuthorizationError(
            "Manually created orders can only be cancelled by an owner or supervisor",
            {"role": role.value, "requestedStatus": requested.value},
        )
