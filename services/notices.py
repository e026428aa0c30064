"""
User-facing message texts.

The order message carries a countdown line that the countdown refresh rewrites
in place; COUNTDOWN_PATTERN must keep matching what order_message renders.
"""

from __future__ import annotations

import re
from typing import List, Optional

from domain.catalog import CatalogGroup, CatalogItem
from domain.order import Order, PaymentMethod, ReleasedReservation
from domain.shop_session import ShopSession, clamp
from domain.vouch import VouchRecord, stars_line
from repositories.stock_ledger import StockLedger
from services.pricing_service import compute_final_price, format_price

DIVIDER = "--------------------"
COUNTDOWN_PATTERN = re.compile(r"Reservation expires in \*\*\d{2,}:\d{2}\*\*")


def countdown_line(text: str) -> str:
    return f"Reservation expires in **{text}**"


def refresh_countdown(content: str, text: str) -> str:
    """Rewrite the countdown line of an order message."""
    return COUNTDOWN_PATTERN.sub(countdown_line(text), content)


def _price_line(item: CatalogItem) -> str:
    final = compute_final_price(item.price, item.discount_percent)
    if item.discount_percent > 0:
        return f"~~{format_price(item.price)}~~ -> **{format_price(final)}** (-{item.discount_percent}%)"
    return f"**{format_price(final)}**"


def catalog_message(group: CatalogGroup, ledger: StockLedger, session: ShopSession) -> str:
    """Catalog listing with the buyer's current selection, quantity and total."""

    selected = group.get_item(session.item_id) or group.items[0]
    remaining_selected = ledger.get_remaining(group.group_id, selected.item_id)
    unit = compute_final_price(selected.price, selected.discount_percent)
    quantity = clamp(session.quantity, 1, max(1, remaining_selected))

    lines = []
    for index, item in enumerate(group.items, start=1):
        mark = "[x]" if item.item_id == selected.item_id else "[ ]"
        popular = " (MOST POPULAR)" if item.popular else ""
        remaining = ledger.get_remaining(group.group_id, item.item_id)
        lines.append(
            f"{mark} **{index}. {item.name}**{popular}\n"
            f"   Stock: **{remaining}** | {_price_line(item)}"
        )

    return (
        f"**{group.title} - Catalog**\n"
        f"{DIVIDER}\n" + "\n\n".join(lines) + f"\n{DIVIDER}\n"
        f"Selected: **{selected.name}** | Stock: **{remaining_selected}** | Unit: **{format_price(unit)}**\n"
        f"Quantity: **{quantity}** | Total: **{format_price(unit * quantity)}**\n"
        "Pick item, adjust quantity, then Confirm to reserve stock."
    )


def order_message(order: Order, group: CatalogGroup, item: CatalogItem, countdown: str) -> str:
    return (
        "**Order Confirmed + Stock Reserved**\n"
        f"Item: **{group.title} - {item.name}**\n"
        f"Qty: **{order.quantity}** | Unit: **{format_price(order.unit_price)}** | "
        f"Total: **{format_price(order.total)}**\n\n"
        f"{countdown_line(countdown)}\n\n"
        "Choose payment method below.\n"
        "After payment, the order will be confirmed automatically.\n"
        "To change anything: **Cancel Order**."
    )


def method_locked_message(method: PaymentMethod, countdown: str) -> str:
    return (
        f"**Payment Method Selected (Locked): {method.label}**\n"
        f"Time left: **{countdown}**\n"
        "Waiting for **automatic confirmation** from the payment API..."
    )


def method_already_selected(method: PaymentMethod, countdown: str) -> str:
    return f"Method already selected: **{method.label}**.\nTime left: **{countdown}**."


def expiry_message() -> str:
    return (
        "**Reservation expired**\n"
        "Reserved stock was returned.\n"
        "Open the catalog again and confirm a new order."
    )


def cancel_message(released: ReleasedReservation, group: Optional[CatalogGroup], item: Optional[CatalogItem]) -> str:
    title = group.title if group else released.group_id
    name = item.name if item else released.item_id
    return (
        "**Order canceled** - reservation released back to stock.\n"
        f"Item: **{title} - {name}** | Qty: **{released.quantity}**"
    )


def payment_confirmed_message(
    order: Order,
    group: Optional[CatalogGroup],
    item: Optional[CatalogItem],
) -> str:
    method = order.method.label if order.method else "UNKNOWN"
    tx = f"\nTX: **{order.transaction_ref}**" if order.transaction_ref else ""
    title = group.title if group else order.group_id
    name = item.name if item else "Unknown"
    return (
        "**Payment Confirmed**\n"
        f"Method: **{method}**{tx}\n"
        f"Order: **{title} - {name}**\n"
        f"Qty: **{order.quantity}** | Total: **{format_price(order.total)}**\n"
        "Staff has been notified and will assist."
    )


def support_requested_message() -> str:
    return "**Support requested** in this channel. Staff has been notified."


def lobby_message() -> str:
    return "**Start Here**\n\nChoose a shop to open, view vouches, or contact support."


def about_message(store_name: str) -> str:
    return (
        f"**What is {store_name}?**\n"
        f"**{store_name}** is a marketplace built to be **100% anonymous**.\n\n"
        "We focus on **fast delivery**, **transparent deals**, and **anonymous vouches**.\n"
        "Need help? Use **Contact Support**."
    )


def vouch_prompt() -> str:
    return (
        "**Rate your experience (anonymous)**\n"
        "Pick a star rating (1-5). Then you'll type a short comment.\n"
        "No username / ID will be shown publicly."
    )


def vouch_comment_request(max_length: int, timeout_minutes: int) -> str:
    return (
        f"**Type your comment now** (max {max_length} chars).\n"
        f"You have **{timeout_minutes} minutes**.\n"
        "Type `cancel` to abort."
    )


def vouch_saved_message(record: VouchRecord) -> str:
    return (
        "**Anonymous vouch saved!**\n"
        f"Rating: {stars_line(record.stars)}\n"
        f'Comment: "{record.comment}"'
    )


def vouch_timed_out_message() -> str:
    return "Vouch timed out. You can pick the stars again anytime."


def vouch_cancelled_message() -> str:
    return "Vouch cancelled."


def vouches_listing(records: List[VouchRecord], limit: int) -> str:
    header = f"**Anonymous Vouches (Latest {min(limit, len(records))})**"
    if not records:
        return f"{header}\nNo vouches yet."

    entries = []
    for index, record in enumerate(records, start=1):
        when = record.at.strftime("%Y-%m-%d %H:%M UTC")
        entries.append(
            f"**{index}.** {stars_line(record.stars)}  `#{record.ref}`\n> {record.comment}\n{when}"
        )
    return header + "\n" + "\n\n".join(entries)
