"""
API dependencies and reply mapping.
"""

import secrets
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from api.models import ActionResponse, OrderResponse
from domain.actor import Actor
from domain.errors import ErrorCode
from domain.order import Order
from domain.time import format_mmss
from services.events import Reply
from services.reservation_engine import ReservationEngine
from services.runtime import Runtime

STATUS_BY_CODE: Dict[str, int] = {
    ErrorCode.ITEM_NOT_FOUND.value: status.HTTP_404_NOT_FOUND,
    ErrorCode.SESSION_NOT_FOUND.value: status.HTTP_404_NOT_FOUND,
    ErrorCode.GROUP_NOT_FOUND.value: status.HTTP_404_NOT_FOUND,
    ErrorCode.SCOPE_NOT_FOUND.value: status.HTTP_404_NOT_FOUND,
    ErrorCode.NO_ACTIVE_ORDER.value: status.HTTP_404_NOT_FOUND,
    ErrorCode.NO_PENDING_VOUCH.value: status.HTTP_404_NOT_FOUND,
    ErrorCode.NOT_OWNER.value: status.HTTP_403_FORBIDDEN,
    ErrorCode.STAFF_ONLY.value: status.HTTP_403_FORBIDDEN,
    ErrorCode.VOUCH_NOT_ALLOWED.value: status.HTTP_403_FORBIDDEN,
    ErrorCode.INSUFFICIENT_STOCK.value: status.HTTP_409_CONFLICT,
    ErrorCode.DUPLICATE_ACTIVE.value: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_COMPLETED.value: status.HTTP_409_CONFLICT,
    ErrorCode.METHOD_LOCKED.value: status.HTTP_409_CONFLICT,
    ErrorCode.ORDER_ACTIVE.value: status.HTTP_409_CONFLICT,
    ErrorCode.VOUCH_PENDING.value: status.HTTP_409_CONFLICT,
    ErrorCode.COOLDOWN.value: status.HTTP_429_TOO_MANY_REQUESTS,
    "INTERNAL": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_runtime(request: Request) -> Runtime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is starting")
    return runtime


def get_actor(
    x_user_id: str = Header(..., min_length=1, description="Identity of the caller"),
    x_staff_token: Optional[str] = Header(None, description="Grants the staff role when it matches"),
    runtime: Runtime = Depends(get_runtime),
) -> Actor:
    """Build the acting identity from request headers."""
    expected = runtime.settings.staff_api_token
    is_staff = bool(expected and x_staff_token and secrets.compare_digest(x_staff_token, expected))
    return Actor(user_id=x_user_id, is_staff=is_staff)


def require_scope_access(scope: str, actor: Actor, runtime: Runtime) -> None:
    """Raise 404 for an unknown scope and 403 when the actor may not act in it."""
    owner = runtime.channels.scope_owner(scope)
    if owner is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": ErrorCode.SCOPE_NOT_FOUND.value, "message": "Channel not found."},
        )
    if not actor.can_manage(owner):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": ErrorCode.NOT_OWNER.value, "message": "You don't have permission to use this."},
        )


def order_response(order: Order, engine: ReservationEngine) -> OrderResponse:
    remaining = engine.time_left(order.scope) if order.is_active else None
    return OrderResponse(
        scope=order.scope,
        buyer_id=order.buyer_id,
        group_id=order.group_id,
        item_id=order.item_id,
        quantity=order.quantity,
        unit_price=order.unit_price,
        total=order.total,
        state=order.state.value,
        method=order.method,
        reserved_until=order.reserved_until,
        created_at=order.created_at,
        completed_at=order.completed_at,
        transaction_ref=order.transaction_ref,
        time_left_seconds=int(remaining.total_seconds()) if remaining else 0,
        countdown=format_mmss(remaining) if remaining else "00:00",
    )


def _plain(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    return value


def reply_to_response(reply: Reply, engine: ReservationEngine) -> ActionResponse:
    """
    Turn a dispatcher reply into an API response.

    Raises:
        HTTPException: When the action was rejected, with {"code", "message"} detail
    """
    if not reply.ok:
        raise HTTPException(
            status_code=STATUS_BY_CODE.get(reply.code or "", status.HTTP_400_BAD_REQUEST),
            detail={"code": reply.code or "REJECTED", "message": reply.message},
        )

    return ActionResponse(
        ok=True,
        message=reply.message,
        scope=reply.scope,
        order=order_response(reply.order, engine) if reply.order else None,
        data={key: _plain(value) for key, value in reply.payload.items()},
    )
