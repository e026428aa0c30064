"""
Domain errors for the reservation lifecycle.

Every error is recoverable and user-facing: it carries a stable code and a
user-safe message, and is reported only to the action that triggered it.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Domain error codes."""

    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    DUPLICATE_ACTIVE = "DUPLICATE_ACTIVE"
    NO_ACTIVE_ORDER = "NO_ACTIVE_ORDER"
    ALREADY_COMPLETED = "ALREADY_COMPLETED"
    METHOD_LOCKED = "METHOD_LOCKED"
    NOT_OWNER = "NOT_OWNER"
    ORDER_ACTIVE = "ORDER_ACTIVE"
    ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    GROUP_NOT_FOUND = "GROUP_NOT_FOUND"
    SCOPE_NOT_FOUND = "SCOPE_NOT_FOUND"
    STAFF_ONLY = "STAFF_ONLY"
    COOLDOWN = "COOLDOWN"
    VOUCH_NOT_ALLOWED = "VOUCH_NOT_ALLOWED"
    VOUCH_PENDING = "VOUCH_PENDING"
    NO_PENDING_VOUCH = "NO_PENDING_VOUCH"


class ReservationError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class InsufficientStockError(ReservationError):
    """Raised when the requested quantity exceeds remaining stock."""

    def __init__(self, requested: int, available: int) -> None:
        if available <= 0:
            message = "Out of stock."
        else:
            message = f"Not enough stock. Available: {available}"
        super().__init__(ErrorCode.INSUFFICIENT_STOCK, message)
        self.requested = requested
        self.available = available


class DuplicateActiveError(ReservationError):
    def __init__(self, scope: str) -> None:
        super().__init__(
            ErrorCode.DUPLICATE_ACTIVE,
            "You already have an active reserved order. Cancel Order to change it.",
        )
        self.scope = scope


class NoActiveOrderError(ReservationError):
    def __init__(self, scope: str) -> None:
        super().__init__(ErrorCode.NO_ACTIVE_ORDER, "No active reservation.")
        self.scope = scope


class AlreadyCompletedError(ReservationError):
    def __init__(self, scope: str) -> None:
        super().__init__(ErrorCode.ALREADY_COMPLETED, "Order already completed.")
        self.scope = scope


class MethodLockedError(ReservationError):
    """Raised when a different payment method is chosen after the lock."""

    def __init__(self, locked_method: str) -> None:
        super().__init__(
            ErrorCode.METHOD_LOCKED,
            f"Method locked to {locked_method.upper()}. Cancel order to change.",
        )
        self.locked_method = locked_method


class NotOwnerError(ReservationError):
    def __init__(self, message: str = "You don't have permission to use this.") -> None:
        super().__init__(ErrorCode.NOT_OWNER, message)


class OrderActiveError(ReservationError):
    """Raised when the selection is changed while a reservation is active."""

    def __init__(self, scope: str) -> None:
        super().__init__(
            ErrorCode.ORDER_ACTIVE,
            "You have an active reserved order. Cancel Order to change item/qty/method.",
        )
        self.scope = scope


class ItemNotFoundError(ReservationError):
    def __init__(self, group_id: str, item_id: str | None) -> None:
        super().__init__(ErrorCode.ITEM_NOT_FOUND, "Item not found.")
        self.group_id = group_id
        self.item_id = item_id


class SessionNotFoundError(ReservationError):
    def __init__(self, buyer_id: str) -> None:
        super().__init__(ErrorCode.SESSION_NOT_FOUND, "Session not found. Open the shop again.")
        self.buyer_id = buyer_id


class GroupNotFoundError(ReservationError):
    def __init__(self, group_id: str) -> None:
        super().__init__(ErrorCode.GROUP_NOT_FOUND, "Shop not found.")
        self.group_id = group_id


class ScopeNotFoundError(ReservationError):
    def __init__(self, scope: str) -> None:
        super().__init__(ErrorCode.SCOPE_NOT_FOUND, "Use this inside your private channels.")
        self.scope = scope


class StaffOnlyError(ReservationError):
    def __init__(self) -> None:
        super().__init__(ErrorCode.STAFF_ONLY, "Staff only.")


class CooldownError(ReservationError):
    def __init__(self, seconds: float) -> None:
        super().__init__(
            ErrorCode.COOLDOWN,
            f"Please wait {seconds:g} seconds before clicking again.",
        )
        self.seconds = seconds


class VouchNotAllowedError(ReservationError):
    def __init__(self) -> None:
        super().__init__(ErrorCode.VOUCH_NOT_ALLOWED, "You can only vouch after a completed order.")


class VouchPendingError(ReservationError):
    def __init__(self) -> None:
        super().__init__(
            ErrorCode.VOUCH_PENDING,
            "You already started a vouch. Please type your comment in chat.",
        )


class NoPendingVouchError(ReservationError):
    def __init__(self) -> None:
        super().__init__(ErrorCode.NO_PENDING_VOUCH, "No vouch in progress. Click the stars first.")


__all__ = [
    "ErrorCode",
    "ReservationError",
    "InsufficientStockError",
    "DuplicateActiveError",
    "NoActiveOrderError",
    "AlreadyCompletedError",
    "MethodLockedError",
    "NotOwnerError",
    "OrderActiveError",
    "ItemNotFoundError",
    "SessionNotFoundError",
    "GroupNotFoundError",
    "ScopeNotFoundError",
    "StaffOnlyError",
    "CooldownError",
    "VouchNotAllowedError",
    "VouchPendingError",
    "NoPendingVouchError",
]
