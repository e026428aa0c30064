"""
Anonymous vouch collection.

A vouch can only be left by the buyer of a completed order, in that order's
scope. The buyer picks stars first, then has a limited time to send a comment.
Sending `cancel` (or nothing) aborts. Saved vouches keep no buyer identity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from domain.errors import NoPendingVouchError, NotOwnerError, VouchNotAllowedError, VouchPendingError
from domain.order import Order
from domain.shop_session import clamp
from domain.time import utc_now
from domain.vouch import MAX_STARS, VouchRecord, random_ref
from repositories.reservation_store import ReservationStore
from repositories.vouch_repository import VouchRepository

logger = logging.getLogger(__name__)

LISTING_LIMITS = (5, 10, 100)


@dataclass(frozen=True, slots=True)
class PendingVouch:
    scope: str
    buyer_id: str
    stars: int
    expires_at: datetime


class VouchOutcome(str, Enum):
    SAVED = "saved"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True, slots=True)
class VouchResult:
    outcome: VouchOutcome
    record: Optional[VouchRecord] = None


def normalize_limit(limit: int) -> int:
    """Listing sizes are 5, 10 or 100; anything else falls back to 5."""
    return limit if limit in LISTING_LIMITS else LISTING_LIMITS[0]


class VouchFlow:

    def __init__(
        self,
        *,
        store: ReservationStore,
        repository: VouchRepository,
        comment_timeout: timedelta = timedelta(minutes=2),
        max_comment_length: int = 250,
        clock: Callable[[], datetime] = utc_now,
        ref_factory: Callable[[], str] = random_ref,
    ) -> None:
        self._store = store
        self._repository = repository
        self.comment_timeout = comment_timeout
        self.max_comment_length = max_comment_length
        self._clock = clock
        self._ref_factory = ref_factory
        self._pending: Dict[Tuple[str, str], PendingVouch] = {}

    def solicit(self, order: Order) -> bool:
        """
        Note that a completed order may now be vouched for.

        Every completed order gets its own prompt; repeat confirmations never
        reach here because the engine completes an order once.
        """

        return order.completed

    def start(self, scope: str, buyer_id: str, stars: int) -> PendingVouch:
        """
        Begin a vouch with the chosen stars (clamped to 1-5).

        Raises:
            VouchNotAllowedError: No completed order in this scope
            NotOwnerError: The caller is not the order's buyer
            VouchPendingError: The buyer already has a live vouch in this scope
        """

        order = self._store.get(scope)
        if order is None or not order.completed:
            raise VouchNotAllowedError()
        if order.buyer_id != buyer_id:
            raise NotOwnerError("Only the buyer can leave a vouch in this channel.")

        now = self._clock()
        existing = self._pending.get((scope, buyer_id))
        if existing is not None and existing.expires_at > now:
            raise VouchPendingError()

        pending = PendingVouch(
            scope=scope,
            buyer_id=buyer_id,
            stars=clamp(int(stars), 1, MAX_STARS),
            expires_at=now + self.comment_timeout,
        )
        self._pending[(scope, buyer_id)] = pending
        return pending

    def submit_comment(self, scope: str, buyer_id: str, text: str) -> VouchResult:
        """
        Finish the buyer's pending vouch with a comment.

        Raises:
            NoPendingVouchError: No vouch was started in this scope
        """

        pending = self._pending.pop((scope, buyer_id), None)
        if pending is None:
            raise NoPendingVouchError()

        if pending.expires_at <= self._clock():
            return VouchResult(outcome=VouchOutcome.TIMED_OUT)

        cleaned = (text or "").strip()
        if not cleaned or cleaned.lower() == "cancel":
            return VouchResult(outcome=VouchOutcome.CANCELLED)

        record = VouchRecord(
            stars=pending.stars,
            comment=cleaned[: self.max_comment_length],
            at=self._clock(),
            ref=self._ref_factory(),
        )
        self._repository.append(record)
        logger.info("Anonymous vouch saved (#%s, %d stars)", record.ref, record.stars)
        return VouchResult(outcome=VouchOutcome.SAVED, record=record)

    def expire_pending(self, scope: str, buyer_id: str) -> bool:
        """Drop the buyer's pending vouch if its comment window has closed."""

        pending = self._pending.get((scope, buyer_id))
        if pending is None or pending.expires_at > self._clock():
            return False
        del self._pending[(scope, buyer_id)]
        return True

    def get_pending(self, scope: str, buyer_id: str) -> Optional[PendingVouch]:
        return self._pending.get((scope, buyer_id))

    def recent(self, limit: int) -> List[VouchRecord]:
        return self._repository.load()[: normalize_limit(limit)]


__all__ = [
    "LISTING_LIMITS",
    "PendingVouch",
    "VouchFlow",
    "VouchOutcome",
    "VouchResult",
    "normalize_limit",
]
