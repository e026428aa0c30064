"""
Shop and Order API Endpoints.

Every mutating endpoint is queued on the event dispatcher and answered with the
dispatcher's reply. The caller's identity comes from the X-User-Id header;
a matching X-Staff-Token adds the staff role.
"""

from fastapi import APIRouter, Depends, HTTPException

from api.deps import get_actor, get_runtime, order_response, reply_to_response, require_scope_access
from api.models import (
    ActionResponse,
    AdjustQuantityRequest,
    OpenShopRequest,
    OrderResponse,
    ScopeMessageResponse,
    ScopeMessagesResponse,
    SelectItemRequest,
    SelectMethodRequest,
)
from domain.actor import Actor
from domain.errors import ErrorCode
from services.events import (
    AdjustQuantity,
    BackToLobby,
    CancelOrder,
    ConfirmSelection,
    OpenLobby,
    OpenShop,
    RequestSupport,
    SelectItem,
    SelectMethod,
)
from services.runtime import Runtime

router = APIRouter()


# ============================================================================
# Scopes
# ============================================================================

@router.post(
    "/lobby",
    response_model=ActionResponse,
    summary="Open Start Here",
    description="Create (or reveal) the caller's private entry scope."
)
async def open_lobby(actor: Actor = Depends(get_actor), runtime: Runtime = Depends(get_runtime)):
    reply = await runtime.dispatcher.submit(OpenLobby(actor=actor))
    return reply_to_response(reply, runtime.engine)


@router.post(
    "/shops",
    response_model=ActionResponse,
    summary="Open Shop",
    description="Open the caller's private shop for a catalog group and start a fresh selection."
)
async def open_shop(
    request: OpenShopRequest,
    actor: Actor = Depends(get_actor),
    runtime: Runtime = Depends(get_runtime),
):
    reply = await runtime.dispatcher.submit(OpenShop(actor=actor, group_id=request.group_id))
    return reply_to_response(reply, runtime.engine)


@router.post("/scopes/{scope}/back", response_model=ActionResponse, summary="Back to Start Here")
async def back_to_lobby(scope: str, actor: Actor = Depends(get_actor), runtime: Runtime = Depends(get_runtime)):
    reply = await runtime.dispatcher.submit(BackToLobby(scope=scope, actor=actor))
    return reply_to_response(reply, runtime.engine)


@router.post("/scopes/{scope}/support", response_model=ActionResponse, summary="Request Support")
async def request_support(scope: str, actor: Actor = Depends(get_actor), runtime: Runtime = Depends(get_runtime)):
    reply = await runtime.dispatcher.submit(RequestSupport(scope=scope, actor=actor))
    return reply_to_response(reply, runtime.engine)


@router.get(
    "/scopes/{scope}/messages",
    response_model=ScopeMessagesResponse,
    summary="Read Scope Messages",
    description="Messages posted into the scope, oldest first. Edited messages show their latest content."
)
def list_messages(scope: str, actor: Actor = Depends(get_actor), runtime: Runtime = Depends(get_runtime)):
    require_scope_access(scope, actor, runtime)
    return ScopeMessagesResponse(
        scope=scope,
        messages=[
            ScopeMessageResponse(message_id=m.message_id, content=m.content, edits=m.edits)
            for m in runtime.channels.messages(scope)
        ],
    )


# ============================================================================
# Selection
# ============================================================================

@router.post("/scopes/{scope}/selection/item", response_model=ActionResponse, summary="Select Item")
async def select_item(
    scope: str,
    request: SelectItemRequest,
    actor: Actor = Depends(get_actor),
    runtime: Runtime = Depends(get_runtime),
):
    reply = await runtime.dispatcher.submit(SelectItem(scope=scope, actor=actor, item_id=request.item_id))
    return reply_to_response(reply, runtime.engine)


@router.post("/scopes/{scope}/selection/quantity", response_model=ActionResponse, summary="Adjust Quantity")
async def adjust_quantity(
    scope: str,
    request: AdjustQuantityRequest,
    actor: Actor = Depends(get_actor),
    runtime: Runtime = Depends(get_runtime),
):
    reply = await runtime.dispatcher.submit(
        AdjustQuantity(scope=scope, actor=actor, delta=request.delta, quantity=request.quantity)
    )
    return reply_to_response(reply, runtime.engine)


# ============================================================================
# Orders
# ============================================================================

@router.post(
    "/scopes/{scope}/order/confirm",
    response_model=ActionResponse,
    summary="Confirm Selection",
    description="Reserve the current selection. Stock is taken immediately and the price is locked."
)
async def confirm_selection(scope: str, actor: Actor = Depends(get_actor), runtime: Runtime = Depends(get_runtime)):
    reply = await runtime.dispatcher.submit(ConfirmSelection(scope=scope, actor=actor))
    return reply_to_response(reply, runtime.engine)


@router.post(
    "/scopes/{scope}/order/method",
    response_model=ActionResponse,
    summary="Select Payment Method",
    description="Lock the order on a payment method. The choice cannot be changed afterwards."
)
async def select_method(
    scope: str,
    request: SelectMethodRequest,
    actor: Actor = Depends(get_actor),
    runtime: Runtime = Depends(get_runtime),
):
    reply = await runtime.dispatcher.submit(SelectMethod(scope=scope, actor=actor, method=request.method))
    return reply_to_response(reply, runtime.engine)


@router.post("/scopes/{scope}/order/cancel", response_model=ActionResponse, summary="Cancel Order")
async def cancel_order(scope: str, actor: Actor = Depends(get_actor), runtime: Runtime = Depends(get_runtime)):
    reply = await runtime.dispatcher.submit(CancelOrder(scope=scope, actor=actor))
    return reply_to_response(reply, runtime.engine)


@router.get("/scopes/{scope}/order", response_model=OrderResponse, summary="Order Status")
def get_order(scope: str, actor: Actor = Depends(get_actor), runtime: Runtime = Depends(get_runtime)):
    require_scope_access(scope, actor, runtime)

    order = runtime.engine.get_order(scope)
    if order is None:
        raise HTTPException(
            status_code=404,
            detail={"code": ErrorCode.NO_ACTIVE_ORDER.value, "message": "No active order in this channel."},
        )
    return order_response(order, runtime.engine)
