"""
Catalog API Endpoints.

Read-only views of the catalog with live remaining stock, plus the store description.
"""

from fastapi import APIRouter, Depends, HTTPException

from api.deps import get_runtime
from api.models import AboutResponse, CatalogGroupResponse, CatalogItemResponse, CatalogResponse
from domain.catalog import CatalogGroup
from domain.errors import ErrorCode
from repositories.stock_ledger import StockLedger
from services import notices
from services.pricing_service import compute_final_price
from services.runtime import Runtime

router = APIRouter()


def _group_response(group: CatalogGroup, ledger: StockLedger) -> CatalogGroupResponse:
    return CatalogGroupResponse(
        group_id=group.group_id,
        title=group.title,
        items=[
            CatalogItemResponse(
                item_id=item.item_id,
                name=item.name,
                remaining=ledger.get_remaining(group.group_id, item.item_id),
                initial_stock=ledger.get_initial(group.group_id, item.item_id),
                price=item.price,
                discount_percent=item.discount_percent,
                final_price=compute_final_price(item.price, item.discount_percent),
                popular=item.popular,
            )
            for item in group.items
        ],
    )


@router.get(
    "/catalog",
    response_model=CatalogResponse,
    summary="List Catalog",
    description="Every catalog group with its items, prices and remaining stock."
)
def list_catalog(runtime: Runtime = Depends(get_runtime)):
    engine = runtime.engine
    return CatalogResponse(
        groups=[_group_response(group, engine.ledger) for group in engine.catalog.groups.values()]
    )


@router.get(
    "/catalog/{group_id}",
    response_model=CatalogGroupResponse,
    summary="Get Catalog Group",
)
def get_catalog_group(group_id: str, runtime: Runtime = Depends(get_runtime)):
    group = runtime.engine.catalog.get_group(group_id)
    if group is None:
        raise HTTPException(
            status_code=404,
            detail={"code": ErrorCode.GROUP_NOT_FOUND.value, "message": "Shop not found."},
        )
    return _group_response(group, runtime.engine.ledger)


@router.get(
    "/about",
    response_model=AboutResponse,
    summary="About the Store",
)
def about(runtime: Runtime = Depends(get_runtime)):
    name = runtime.settings.store_name
    return AboutResponse(store_name=name, text=notices.about_message(name))
