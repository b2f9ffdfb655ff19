"""
Order status lifecycle.

Allowed edges:

    WAITING    -> ACCEPTED | REJECTED | CANCELED
    ACCEPTED   -> COOKING | CANCELED
    COOKING    -> DELIVERING
    DELIVERING -> COMPLETED

COMPLETED, REJECTED and CANCELED are terminal. A store owner may take any
edge for orders of their own store, the customer who placed an order may
only cancel it (whatever their role), and admins may take any edge.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, Optional

from ..errors import ConflictError, ForbiddenError, InvalidTransitionError, NotFoundError
from ..messages import build_notifications
from ..models import Actor, Order, OrderStatus, Role, TransitionResult
from ..settings import settings


logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.WAITING: frozenset({OrderStatus.ACCEPTED, OrderStatus.REJECTED, OrderStatus.CANCELED}),
    OrderStatus.ACCEPTED: frozenset({OrderStatus.COOKING, OrderStatus.CANCELED}),
    OrderStatus.COOKING: frozenset({OrderStatus.DELIVERING}),
    OrderStatus.DELIVERING: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
    OrderStatus.CANCELED: frozenset(),
}

CUSTOMER_TRANSITIONS = frozenset({OrderStatus.CANCELED})


def can_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    return requested in ALLOWED_TRANSITIONS.get(current, frozenset())


def check_transition(current: OrderStatus, requested: OrderStatus) -> None:
    """Raise InvalidTransitionError unless current -> requested is an edge."""
    if current.is_terminal:
        raise InvalidTransitionError(
            current.value,
            requested.value,
            f"Order is already {current.value}; no further status changes are allowed.",
        )
    if not can_transition(current, requested):
        raise InvalidTransitionError(current.value, requested.value)


def check_permission(order: Order, requested: OrderStatus, actor: Actor) -> None:
    """
    Raise ForbiddenError unless `actor` may move `order` to `requested`.

    Rights follow the actor's relation to the order: the store's owner may
    take any edge, the customer who placed it may cancel it. A store owner
    ordering from another store is a customer there.
    """
    if actor.role is Role.ADMIN:
        return
    if actor.role is Role.OWNER and order.store_owner_id == actor.user_id:
        return
    if order.user_id == actor.user_id:
        if requested not in CUSTOMER_TRANSITIONS:
            raise ForbiddenError(f"Customers cannot change an order to '{requested.value}'.")
        return
    if actor.role is Role.OWNER:
        raise ForbiddenError("Only the owner of this store can change the order status.")
    raise ForbiddenError("You can only change the status of your own order.")


def check_read_access(order: Order, actor: Actor) -> None:
    if actor.role is Role.ADMIN:
        return
    if actor.role is Role.OWNER and order.store_owner_id == actor.user_id:
        return
    if order.user_id == actor.user_id:
        return
    raise ForbiddenError("You do not have access to this order.")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderService:
    """Validates and applies status transitions, then notifies."""

    def __init__(self, store, notifier, clock: Callable[[], datetime] = _utcnow, max_attempts: Optional[int] = None):
        self.store = store
        self.notifier = notifier
        self.clock = clock
        if max_attempts is None:
            max_attempts = settings.transition_max_attempts
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts

    async def _load(self, order_id: int) -> Order:
        order = await self.store.get_order(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} does not exist.")
        return order

    async def get_order(self, order_id: int, actor: Actor) -> Order:
        order = await self._load(order_id)
        check_read_access(order, actor)
        return order

    async def transition(self, order_id: int, requested_status: Any, actor: Actor) -> TransitionResult:
        """
        Move an order to `requested_status` on behalf of `actor`.

        Checks run in order: existence (NotFoundError), lifecycle edge
        (InvalidTransitionError), permission (ForbiddenError). Nothing is
        written unless all pass.

        The write is a compare-and-swap on the status that was validated. If
        another request changed the order first, the order is re-read and
        validated again; after max_attempts lost races ConflictError is
        raised.

        Notifications are dispatched after the write and never change the
        outcome of this call.
        """
        requested = OrderStatus.parse(requested_status)

        for attempt in range(1, self.max_attempts + 1):
            order = await self._load(order_id)
            if requested is None:
                raise InvalidTransitionError(
                    order.status.value,
                    str(requested_status),
                    f"'{requested_status}' is not a valid order status.",
                )
            check_transition(order.status, requested)
            check_permission(order, requested, actor)

            updated = await self.store.update_order_status(
                order.id, order.status, requested, self.clock()
            )
            if updated is not None:
                break
            logger.info(
                "[orders] Status changed concurrently order_id=%s expected=%s attempt=%d",
                order_id, order.status.value, attempt,
            )
        else:
            raise ConflictError(f"Order {order_id} is being updated concurrently; try again.")

        logger.info(
            "[orders] Status changed order_id=%s %s -> %s actor=%s:%s",
            updated.id, order.status.value, updated.status.value, actor.role.value, actor.user_id,
        )
        self._notify(updated)

        return TransitionResult(
            order_id=updated.id,
            store_id=updated.store_id,
            status=updated.status,
            updated_at=updated.updated_at,
        )

    def _notify(self, order: Order) -> None:
        try:
            self.notifier.dispatch(build_notifications(order.status))
        except Exception as e:
            # The status change is already committed
            logger.error("[orders] Failed to schedule notifications order_id=%s error=%s", order.id, e)
