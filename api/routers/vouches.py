"""
Vouches API Endpoints.

Buyers of a completed order pick a star rating and then send a comment within
the comment window. Listings never include buyer identity.
"""

from fastapi import APIRouter, Depends, Query

from api.deps import get_actor, get_runtime, reply_to_response
from api.models import (
    ActionResponse,
    VouchCommentRequest,
    VouchListResponse,
    VouchResponse,
    VouchStarsRequest,
)
from domain.actor import Actor
from services.events import SubmitVouchComment, SubmitVouchStars
from services.notices import vouches_listing
from services.runtime import Runtime
from services.vouch_flow import normalize_limit

router = APIRouter()


@router.post("/scopes/{scope}/vouch/stars", response_model=ActionResponse, summary="Pick Vouch Stars")
async def submit_stars(
    scope: str,
    request: VouchStarsRequest,
    actor: Actor = Depends(get_actor),
    runtime: Runtime = Depends(get_runtime),
):
    reply = await runtime.dispatcher.submit(SubmitVouchStars(scope=scope, actor=actor, stars=request.stars))
    return reply_to_response(reply, runtime.engine)


@router.post(
    "/scopes/{scope}/vouch/comment",
    response_model=ActionResponse,
    summary="Send Vouch Comment",
    description="Finish the pending vouch. Send 'cancel' to abort. data.outcome is saved, cancelled or timed_out."
)
async def submit_comment(
    scope: str,
    request: VouchCommentRequest,
    actor: Actor = Depends(get_actor),
    runtime: Runtime = Depends(get_runtime),
):
    reply = await runtime.dispatcher.submit(SubmitVouchComment(scope=scope, actor=actor, text=request.text))
    return reply_to_response(reply, runtime.engine)


@router.get("/vouches", response_model=VouchListResponse, summary="List Vouches")
def list_vouches(
    limit: int = Query(5, description="5, 10 or 100; anything else falls back to 5"),
    runtime: Runtime = Depends(get_runtime),
):
    limit = normalize_limit(limit)
    records = runtime.vouch_flow.recent(limit)
    return VouchListResponse(
        limit=limit,
        vouches=[VouchResponse(stars=r.stars, comment=r.comment, at=r.at, ref=r.ref) for r in records],
        text=vouches_listing(records, limit),
    )
