"""
Reservation store (in-process persistence).

Maps a scope (one buyer's private shop context) to its Order. This is the
single source of truth for order state. It does not enforce lifecycle rules;
the reservation engine does.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from domain.order import Order


class ReservationStore:

    def __init__(self) -> None:
        self._orders: Dict[str, Order] = {}

    def get(self, scope: str) -> Optional[Order]:
        return self._orders.get(scope)

    def get_active(self, scope: str) -> Optional[Order]:
        """The scope's order if it is reserved and not completed."""

        order = self._orders.get(scope)
        if order is not None and order.is_active:
            return order
        return None

    def put(self, order: Order) -> None:
        self._orders[order.scope] = order

    def remove(self, scope: str) -> Optional[Order]:
        return self._orders.pop(scope, None)

    def list_active(self) -> List[Order]:
        return [order for order in self._orders.values() if order.is_active]

    def __len__(self) -> int:
        return len(self._orders)


__all__ = ["ReservationStore"]
