"""
Domain: Orders (reservations) and payment methods.

Lifecycle:
- NONE -> RESERVED(unlocked): created on a confirmed selection, stock decremented.
- RESERVED(unlocked) -> RESERVED(locked): a payment method is chosen; item, quantity
  and method are frozen from then on.
- RESERVED(*) -> COMPLETED: payment confirmed. Terminal.
- RESERVED(*) -> NONE: canceled or expired; the order is removed and its quantity
  goes back to stock exactly once.

Invariants enforced here:
- quantity >= 1
- locked implies method is set
- completed implies reserved, and a completed order is never re-locked
- pricing is computed once at creation and never recomputed
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .time import require_utc_timestamp


class PaymentMethod(str, Enum):
    PIX = "pix"
    PAYPAL = "paypal"
    CRYPTO = "crypto"

    @property
    def label(self) -> str:
        return self.value.upper()


class OrderState(str, Enum):
    RESERVED_UNLOCKED = "RESERVED_UNLOCKED"
    RESERVED_LOCKED = "RESERVED_LOCKED"
    COMPLETED = "COMPLETED"


@dataclass(slots=True)
class Order:
    """
    The per-scope purchase in progress.

    One Order exists per scope at most. The order message reference is only used
    to refresh the displayed remaining time.
    """

    scope: str
    buyer_id: str
    group_id: str
    item_id: str
    quantity: int
    unit_price: int
    total: int
    reserved_until: datetime
    created_at: datetime
    reserved: bool = True
    locked: bool = False
    completed: bool = False
    method: Optional[PaymentMethod] = None
    order_message_id: Optional[str] = None
    completed_at: Optional[datetime] = None
    transaction_ref: Optional[str] = None

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise ValueError("quantity must be >= 1")
        if self.total != self.unit_price * self.quantity:
            raise ValueError("total must equal unit_price * quantity")
        require_utc_timestamp("reserved_until", self.reserved_until)
        require_utc_timestamp("created_at", self.created_at)

    @property
    def is_active(self) -> bool:
        """Reserved and still awaiting payment."""
        return self.reserved and not self.completed

    @property
    def state(self) -> OrderState:
        if self.completed:
            return OrderState.COMPLETED
        if self.locked:
            return OrderState.RESERVED_LOCKED
        return OrderState.RESERVED_UNLOCKED

    def lock(self, method: PaymentMethod) -> None:
        """Freeze the order on a payment method. One-way."""

        if self.completed:
            raise ValueError("completed orders cannot be locked")
        if self.locked:
            raise ValueError("order is already locked")
        self.method = method
        self.locked = True

    def extend_until(self, deadline: datetime) -> None:
        require_utc_timestamp("deadline", deadline)
        if self.completed:
            raise ValueError("completed orders cannot be extended")
        self.reserved_until = deadline

    def complete(self, completed_at: datetime, transaction_ref: Optional[str] = None) -> None:
        require_utc_timestamp("completed_at", completed_at)
        if not self.reserved:
            raise ValueError("only reserved orders can be completed")
        if self.completed:
            raise ValueError("order is already completed")
        self.completed = True
        self.completed_at = completed_at
        self.transaction_ref = transaction_ref


@dataclass(frozen=True, slots=True)
class ReleasedReservation:
    """What went back to stock when an order left the RESERVED state."""

    scope: str
    buyer_id: str
    group_id: str
    item_id: str
    quantity: int
    reason: str  # canceled, expired
