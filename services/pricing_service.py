"""
Pricing service for calculating reservation quotes.

Prices are whole currency units. The discounted unit price is rounded half-up
once, and the total is unit price times quantity. A quote is computed at
reservation time and stored on the order; it is never recomputed from live
catalog state.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from domain.catalog import CatalogItem

CURRENCY_PREFIX = "R$"


@dataclass(frozen=True, slots=True)
class PriceQuote:
    """
    Locked price for a quantity of a single catalog item.
    """
    item_id: str
    original_unit_price: int
    discount_percent: int
    unit_price: int
    quantity: int

    @property
    def total(self) -> int:
        return self.unit_price * self.quantity


def compute_final_price(price: int, discount_percent: int) -> int:
    """
    Apply a percentage discount and round to whole currency units (half-up).

    The discount is clamped to [0, 100].

    Example:
        compute_final_price(60, 20)
        # Returns 48
    """
    discount = max(0, min(100, int(discount_percent or 0)))
    final = Decimal(price) * (Decimal(100) - Decimal(discount)) / Decimal(100)
    return int(final.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def quote_item(item: CatalogItem, quantity: int) -> PriceQuote:
    """
    Calculate the locked quote for `quantity` units of `item`.

    Raises:
        ValueError: If quantity is below 1
    """
    if quantity < 1:
        raise ValueError("quantity must be >= 1")

    return PriceQuote(
        item_id=item.item_id,
        original_unit_price=item.price,
        discount_percent=item.discount_percent,
        unit_price=compute_final_price(item.price, item.discount_percent),
        quantity=quantity,
    )


def format_price(amount: int) -> str:
    """Render an amount with the store currency prefix, e.g. 'R$ 48'."""
    return f"{CURRENCY_PREFIX} {int(amount)}"


__all__ = [
    "CURRENCY_PREFIX",
    "PriceQuote",
    "compute_final_price",
    "quote_item",
    "format_price",
]
