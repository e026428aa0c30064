"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from domain.order import PaymentMethod


# ============================================================================
# Catalog Models
# ============================================================================

class CatalogItemResponse(BaseModel):
    """Single catalog item with its live stock."""
    item_id: str
    name: str
    remaining: int
    initial_stock: int
    price: int
    discount_percent: int
    final_price: int
    popular: bool

    class Config:
        json_schema_extra = {
            "example": {
                "item_id": "phoenix",
                "name": "Phoenix",
                "remaining": 3,
                "initial_stock": 4,
                "price": 60,
                "discount_percent": 20,
                "final_price": 48,
                "popular": True
            }
        }


class CatalogGroupResponse(BaseModel):
    """One shop's catalog."""
    group_id: str
    title: str
    items: List[CatalogItemResponse]


class CatalogResponse(BaseModel):
    """Every catalog group."""
    groups: List[CatalogGroupResponse]


class AboutResponse(BaseModel):
    """Store description shown from the info menu."""
    store_name: str
    text: str


# ============================================================================
# Selection and Order Models
# ============================================================================

class OpenShopRequest(BaseModel):
    """Request to open (or reopen) the buyer's private shop for a group."""
    group_id: str = Field(..., min_length=1, description="Catalog group to shop in")

    class Config:
        json_schema_extra = {"example": {"group_id": "bloodlines"}}


class SelectItemRequest(BaseModel):
    """Request to change the selected item."""
    item_id: str = Field(..., min_length=1)


class AdjustQuantityRequest(BaseModel):
    """Change the selected quantity by a delta, or set it outright."""
    delta: Optional[int] = Field(None, description="Relative change, e.g. -10, -1, 1, 10")
    quantity: Optional[int] = Field(None, ge=1, description="Absolute quantity")

    class Config:
        json_schema_extra = {"example": {"delta": 1}}


class SelectMethodRequest(BaseModel):
    """Request to lock the order on a payment method."""
    method: PaymentMethod

    class Config:
        json_schema_extra = {"example": {"method": "crypto"}}


class OrderResponse(BaseModel):
    """Order state as seen by its buyer or staff."""
    scope: str
    buyer_id: str
    group_id: str
    item_id: str
    quantity: int
    unit_price: int
    total: int
    state: str
    method: Optional[PaymentMethod] = None
    reserved_until: datetime
    created_at: datetime
    completed_at: Optional[datetime] = None
    transaction_ref: Optional[str] = None
    time_left_seconds: int
    countdown: str

    class Config:
        json_schema_extra = {
            "example": {
                "scope": "bloodlines-123456789",
                "buyer_id": "123456789",
                "group_id": "bloodlines",
                "item_id": "phoenix",
                "quantity": 3,
                "unit_price": 48,
                "total": 144,
                "state": "RESERVED_LOCKED",
                "method": "crypto",
                "reserved_until": "2025-01-01T12:15:00Z",
                "created_at": "2025-01-01T12:00:00Z",
                "completed_at": None,
                "transaction_ref": None,
                "time_left_seconds": 840,
                "countdown": "14:00"
            }
        }


class ActionResponse(BaseModel):
    """Outcome of a buyer or staff action."""
    ok: bool
    message: str
    scope: Optional[str] = None
    order: Optional[OrderResponse] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class ScopeMessageResponse(BaseModel):
    message_id: str
    content: str
    edits: int


class ScopeMessagesResponse(BaseModel):
    """Messages posted into a scope, oldest first."""
    scope: str
    messages: List[ScopeMessageResponse]


# ============================================================================
# Payment Models
# ============================================================================

class PaymentConfirmRequest(BaseModel):
    """Payment provider confirmation for a scope's order."""
    scope: str = Field(..., min_length=1)
    transaction_ref: Optional[str] = Field(None, max_length=200)

    class Config:
        json_schema_extra = {
            "example": {
                "scope": "bloodlines-123456789",
                "transaction_ref": "TX-0001"
            }
        }


# ============================================================================
# Vouch Models
# ============================================================================

class VouchStarsRequest(BaseModel):
    stars: int = Field(..., ge=1, le=5)


class VouchCommentRequest(BaseModel):
    text: str = Field(..., description="Comment text, or 'cancel' to abort")


class VouchResponse(BaseModel):
    """Anonymous vouch. Carries no buyer identity."""
    stars: int
    comment: str
    at: datetime
    ref: str


class VouchListResponse(BaseModel):
    limit: int
    vouches: List[VouchResponse]
    text: str


# ============================================================================
# Error Models
# ============================================================================

class ErrorDetail(BaseModel):
    """Detail body of a rejected action."""
    code: str
    message: str

    class Config:
        json_schema_extra = {
            "example": {
                "code": "INSUFFICIENT_STOCK",
                "message": "Not enough stock. Available: 2"
            }
        }
