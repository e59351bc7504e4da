"""Order status state machine.

The transition table is the single source of truth for which status changes
are legal. It is checked for completeness when the module is imported.
"""
from types import MappingProxyType
from typing import FrozenSet, Union

from marketplace.core.exceptions import InvalidTransitionError
from marketplace.models.database import OrderStatus

TRANSITIONS = MappingProxyType({
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
})

# Statuses from which the customer may still cancel on their own.
CUSTOMER_CANCELLABLE = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})

STATUS_LABELS = {
    OrderStatus.PENDING: "Pending",
    OrderStatus.CONFIRMED: "Confirmed",
    OrderStatus.PREPARING: "Preparing",
    OrderStatus.READY: "Ready for pickup",
    OrderStatus.OUT_FOR_DELIVERY: "Out for delivery",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
    OrderStatus.REFUNDED: "Refunded",
}


def _check_table():
    missing = set(OrderStatus) - set(TRANSITIONS)
    if missing:
        raise RuntimeError(f"Transition table has no entry for {sorted(s.value for s in missing)}")
    for source, targets in TRANSITIONS.items():
        if source in targets:
            raise RuntimeError(f"{source.value} may not transition to itself")


_check_table()


StatusLike = Union[OrderStatus, str]


def allowed_targets(status: StatusLike) -> FrozenSet[OrderStatus]:
    return TRANSITIONS[OrderStatus(status)]


def can_transition(source: StatusLike, target: StatusLike) -> bool:
    return OrderStatus(target) in allowed_targets(source)


def is_terminal(status: StatusLike) -> bool:
    return not allowed_targets(status)


def ensure_transition(source: StatusLike, target: StatusLike) -> None:
    """Raise InvalidTransitionError unless ``source -> target`` is in the table"""
    if not can_transition(source, target):
        raise InvalidTransitionError(OrderStatus(source), OrderStatus(target))
