"""
Events processed by the dispatcher.

Buyer actions, staff actions, payment signals and timer firings all travel as
these objects through the same queue, so no two of them ever interleave.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from domain.actor import Actor
from domain.order import Order, PaymentMethod


@dataclass(frozen=True)
class Event:
    """Base class for every dispatcher event."""


@dataclass(frozen=True)
class OpenLobby(Event):
    actor: Actor


@dataclass(frozen=True)
class OpenShop(Event):
    actor: Actor
    group_id: str


@dataclass(frozen=True)
class BackToLobby(Event):
    scope: str
    actor: Actor


@dataclass(frozen=True)
class RequestSupport(Event):
    scope: str
    actor: Actor


@dataclass(frozen=True)
class SelectItem(Event):
    scope: str
    actor: Actor
    item_id: str


@dataclass(frozen=True)
class AdjustQuantity(Event):
    scope: str
    actor: Actor
    delta: Optional[int] = None
    quantity: Optional[int] = None


@dataclass(frozen=True)
class ConfirmSelection(Event):
    scope: str
    actor: Actor


@dataclass(frozen=True)
class SelectMethod(Event):
    scope: str
    actor: Actor
    method: PaymentMethod


@dataclass(frozen=True)
class CancelOrder(Event):
    scope: str
    actor: Actor


@dataclass(frozen=True)
class MarkPaid(Event):
    scope: str
    actor: Actor


@dataclass(frozen=True)
class PaymentConfirmed(Event):
    scope: str
    transaction_ref: Optional[str] = None


@dataclass(frozen=True)
class ExpireReservation(Event):
    scope: str


@dataclass(frozen=True)
class SubmitVouchStars(Event):
    scope: str
    actor: Actor
    stars: int


@dataclass(frozen=True)
class SubmitVouchComment(Event):
    scope: str
    actor: Actor
    text: str


@dataclass(frozen=True)
class VouchTimeout(Event):
    scope: str
    buyer_id: str


@dataclass(frozen=True)
class Reply:
    """
    Direct response to the event's sender.

    code is set (an ErrorCode value, or INTERNAL) when ok is False.
    """
    ok: bool
    message: str
    code: Optional[str] = None
    scope: Optional[str] = None
    order: Optional[Order] = None
    payload: Dict[str, Any] = field(default_factory=dict)


# Button-style actions subject to the per-user cooldown.
COOLDOWN_EVENTS = (
    OpenShop,
    BackToLobby,
    RequestSupport,
    AdjustQuantity,
    ConfirmSelection,
    SelectMethod,
    CancelOrder,
    MarkPaid,
)
