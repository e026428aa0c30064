"""
Reservation engine: the order lifecycle orchestrator.

Handles:
- Pre-reservation selection (item and quantity) on the buyer's shop session
- Order creation, which takes stock from the ledger and locks the price
- Payment method selection, which locks the order and applies the fairness policy
- Cancellation, expiry and payment confirmation

Every public operation is synchronous: the check and the mutation of order and
stock state happen with no suspension point in between. Callers perform any
external side effect (messages, visibility) only after the operation returns.

Fairness policy:
- Before a method is chosen the default duration applies.
- Choosing a non-extending method leaves the deadline untouched, even when less
  time remains than that method's nominal duration. Delaying the choice never
  buys extra time.
- Choosing an extending method (the slowest-settling one) with less than its
  nominal duration left moves the deadline to now + nominal duration. The lock
  is one-way, so this can happen at most once per order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

from config.settings import ReservationPolicy
from domain.actor import Actor
from domain.catalog import Catalog, CatalogGroup, CatalogItem
from domain.errors import (
    AlreadyCompletedError,
    DuplicateActiveError,
    GroupNotFoundError,
    InsufficientStockError,
    ItemNotFoundError,
    MethodLockedError,
    NoActiveOrderError,
    NotOwnerError,
    OrderActiveError,
    SessionNotFoundError,
)
from domain.order import Order, PaymentMethod, ReleasedReservation
from domain.shop_session import ShopSession, clamp
from domain.time import time_left, utc_now
from repositories.reservation_store import ReservationStore
from repositories.session_repository import SessionRepository
from repositories.stock_ledger import StockLedger
from services.pricing_service import quote_item

logger = logging.getLogger(__name__)

# An expiry firing earlier than this before the live deadline is stale (the
# deadline moved after the timer was armed) and only re-arms the timer.
EXPIRY_GRACE = timedelta(seconds=1)


class Timers(Protocol):
    def schedule_expiry(self, scope: str, deadline: datetime) -> None: ...

    def start_countdown(self, scope: str, read_deadline: Callable[[], Optional[datetime]]) -> bool: ...

    def stop_all(self, scope: str) -> None: ...


@dataclass(frozen=True, slots=True)
class MethodSelection:
    """
    Outcome of choosing a payment method.

    changed is False when the same method was chosen again (idempotent).
    extended is True when the fairness extension moved the deadline.
    """
    order: Order
    changed: bool
    extended: bool


class ReservationEngine:

    def __init__(
        self,
        *,
        catalog: Catalog,
        ledger: StockLedger,
        store: ReservationStore,
        sessions: SessionRepository,
        timers: Timers,
        policy: ReservationPolicy,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.catalog = catalog
        self.ledger = ledger
        self.store = store
        self.sessions = sessions
        self.timers = timers
        self.policy = policy
        self._clock = clock

    # ------------------------------------------------------------------
    # Selection (pre-reservation)
    # ------------------------------------------------------------------

    def open_session(self, buyer_id: str, group_id: str) -> ShopSession:
        """Start a fresh selection on the group's popular-or-first item, quantity 1."""

        group = self._require_group(group_id)
        item = group.default_item()
        if item is None:
            raise ItemNotFoundError(group_id, None)

        return self.sessions.save(
            ShopSession(buyer_id=buyer_id, group_id=group_id, item_id=item.item_id, quantity=1)
        )

    def select_item(
        self,
        scope: str,
        buyer_id: str,
        item_id: str,
        *,
        group_id: Optional[str] = None,
    ) -> ShopSession:
        if self.store.get_active(scope) is not None:
            raise OrderActiveError(scope)

        session = self._require_session(buyer_id, group_id)
        item = self.catalog.get_item(session.group_id, item_id)
        if item is None:
            raise ItemNotFoundError(session.group_id, item_id)

        session.item_id = item.item_id
        session.clamp_quantity(self.ledger.get_remaining(session.group_id, item.item_id))
        return self.sessions.save(session)

    def adjust_selection(
        self,
        scope: str,
        buyer_id: str,
        *,
        delta: Optional[int] = None,
        quantity: Optional[int] = None,
        group_id: Optional[str] = None,
    ) -> ShopSession:
        """
        Change the selected quantity by `delta` or set it to `quantity`.

        The result is clamped to [1, max(1, remaining stock)].

        Raises:
            OrderActiveError: The scope already holds an active reservation
            SessionNotFoundError: The buyer has no open session for this shop
            ItemNotFoundError: The selected item no longer exists
        """

        if self.store.get_active(scope) is not None:
            raise OrderActiveError(scope)

        session = self._require_session(buyer_id, group_id)
        item = self.catalog.get_item(session.group_id, session.item_id)
        if item is None:
            raise ItemNotFoundError(session.group_id, session.item_id)

        if quantity is not None:
            session.quantity = quantity
        elif delta:
            session.quantity = (session.quantity or 1) + delta

        session.clamp_quantity(self.ledger.get_remaining(session.group_id, item.item_id))
        return self.sessions.save(session)

    def get_session(self, buyer_id: str) -> Optional[ShopSession]:
        return self.sessions.get(buyer_id)

    # ------------------------------------------------------------------
    # Order lifecycle
    # ------------------------------------------------------------------

    def confirm_selection(self, scope: str, buyer_id: str, *, group_id: Optional[str] = None) -> Order:
        """Reserve the buyer's current selection in `scope`."""

        if self.store.get_active(scope) is not None:
            raise DuplicateActiveError(scope)

        session = self._require_session(buyer_id, group_id)
        quantity = clamp(session.quantity or 1, 1, self.policy.max_quantity)
        return self.create_order(scope, buyer_id, session.group_id, session.item_id, quantity)

    def create_order(
        self,
        scope: str,
        buyer_id: str,
        group_id: str,
        item_id: str,
        quantity: int,
    ) -> Order:
        """
        Reserve stock and create the scope's order.

        The price is locked from the catalog now. The default expiry timer is
        armed; the countdown starts once the order message is attached.

        Raises:
            GroupNotFoundError / ItemNotFoundError: Unknown catalog entry
            DuplicateActiveError: The scope already holds an active reservation
            InsufficientStockError: Not enough units remain
        """

        item = self._require_item(group_id, item_id)

        if self.store.get_active(scope) is not None:
            raise DuplicateActiveError(scope)

        quote = quote_item(item, quantity)

        if not self.ledger.reserve(group_id, item_id, quantity):
            raise InsufficientStockError(quantity, self.ledger.get_remaining(group_id, item_id))

        now = self._clock()
        order = Order(
            scope=scope,
            buyer_id=buyer_id,
            group_id=group_id,
            item_id=item_id,
            quantity=quantity,
            unit_price=quote.unit_price,
            total=quote.total,
            reserved_until=now + self.policy.default_duration,
            created_at=now,
        )
        self.store.put(order)
        self.timers.schedule_expiry(scope, order.reserved_until)

        logger.info(
            "Reserved %d x %s:%s for %s in %s (total %d)",
            quantity, group_id, item_id, buyer_id, scope, order.total,
        )
        return order

    def attach_order_message(self, scope: str, message_id: str) -> bool:
        """Record the rendered order message and start its countdown (once)."""

        order = self.store.get_active(scope)
        if order is None:
            return False

        order.order_message_id = message_id
        return self.timers.start_countdown(scope, lambda: self.countdown_deadline(scope))

    def select_method(self, scope: str, actor: Actor, method: PaymentMethod) -> MethodSelection:
        """
        Lock the order on a payment method and apply the fairness policy.

        Choosing the already-locked method again is an idempotent success.

        Raises:
            NoActiveOrderError, AlreadyCompletedError, NotOwnerError, MethodLockedError
        """

        order = self.store.get(scope)
        if order is None or not order.reserved:
            raise NoActiveOrderError(scope)
        if order.completed:
            raise AlreadyCompletedError(scope)
        if not actor.can_manage(order.buyer_id):
            raise NotOwnerError("This order belongs to another user.")

        if order.locked:
            if order.method == method:
                return MethodSelection(order=order, changed=False, extended=False)
            raise MethodLockedError(order.method.value if order.method else "unknown")

        order.lock(method)

        extended = False
        if method in self.policy.extending_methods:
            nominal = self.policy.duration_for(method)
            now = self._clock()
            if time_left(order.reserved_until, now) < nominal:
                order.extend_until(now + nominal)
                self.timers.schedule_expiry(scope, order.reserved_until)
                extended = True

        logger.info(
            "Order in %s locked to %s%s",
            scope, method.value, " (deadline extended)" if extended else "",
        )
        return MethodSelection(order=order, changed=True, extended=extended)

    def cancel(self, scope: str, actor: Actor) -> ReleasedReservation:
        """
        Cancel the scope's reservation and return its stock.

        Raises:
            NoActiveOrderError, AlreadyCompletedError, NotOwnerError
        """

        order = self.store.get(scope)
        if order is None or not order.reserved:
            raise NoActiveOrderError(scope)
        if order.completed:
            raise AlreadyCompletedError(scope)
        if not actor.can_manage(order.buyer_id):
            raise NotOwnerError("You can't cancel someone else's order.")

        return self._release(order, "canceled")

    def expire(self, scope: str) -> Optional[ReleasedReservation]:
        """
        Release the scope's reservation because its timer fired.

        No-op when the order is gone or already completed. A firing that is
        ahead of the live deadline re-arms the timer instead of releasing.
        """

        order = self.store.get(scope)
        if order is None or not order.is_active:
            logger.debug("Expiry for %s ignored: no active reservation", scope)
            return None

        if order.reserved_until - self._clock() > EXPIRY_GRACE:
            self.timers.schedule_expiry(scope, order.reserved_until)
            return None

        return self._release(order, "expired")

    def confirm_payment(self, scope: str, transaction_ref: Optional[str] = None) -> Optional[Order]:
        """
        Mark the scope's order as paid.

        Returns the completed order, or None when there was nothing to complete
        (no order, released, or already completed). Safe to call repeatedly.
        """

        order = self.store.get(scope)
        if order is None or not order.is_active:
            return None

        order.complete(self._clock(), transaction_ref)
        self.timers.stop_all(scope)

        logger.info("Payment confirmed for %s (ref=%s)", scope, transaction_ref)
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, scope: str) -> Optional[Order]:
        return self.store.get(scope)

    def time_left(self, scope: str) -> timedelta:
        order = self.store.get_active(scope)
        if order is None:
            return timedelta(0)
        return time_left(order.reserved_until, self._clock())

    def countdown_deadline(self, scope: str) -> Optional[datetime]:
        """Live deadline for the countdown display, or None when it should stop."""

        order = self.store.get_active(scope)
        if order is None or order.order_message_id is None:
            return None
        return order.reserved_until

    # ------------------------------------------------------------------

    def _release(self, order: Order, reason: str) -> ReleasedReservation:
        self.store.remove(order.scope)
        self.timers.stop_all(order.scope)
        self.ledger.release(order.group_id, order.item_id, order.quantity)

        logger.info(
            "Reservation in %s %s: %d x %s:%s returned to stock",
            order.scope, reason, order.quantity, order.group_id, order.item_id,
        )
        return ReleasedReservation(
            scope=order.scope,
            buyer_id=order.buyer_id,
            group_id=order.group_id,
            item_id=order.item_id,
            quantity=order.quantity,
            reason=reason,
        )

    def _require_group(self, group_id: str) -> CatalogGroup:
        group = self.catalog.get_group(group_id)
        if group is None:
            raise GroupNotFoundError(group_id)
        return group

    def _require_item(self, group_id: str, item_id: str) -> CatalogItem:
        item = self._require_group(group_id).get_item(item_id)
        if item is None:
            raise ItemNotFoundError(group_id, item_id)
        return item

    def _require_session(self, buyer_id: str, group_id: Optional[str] = None) -> ShopSession:
        """The buyer's session; when `group_id` is given it must be that shop's session."""

        session = self.sessions.get(buyer_id)
        if session is None or (group_id is not None and session.group_id != group_id):
            raise SessionNotFoundError(buyer_id)
        return session


__all__ = ["EXPIRY_GRACE", "MethodSelection", "ReservationEngine"]
