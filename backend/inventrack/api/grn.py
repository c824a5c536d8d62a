"""
Goods receipt (GRN) API
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from inventrack.dependencies import OrgContext, get_org_context
from inventrack.schemas.inventory import GRNCreate, GRNResponse, GRNUpdate
from inventrack.services.inventory_service import InsufficientStockError, InventoryService, MovementNotFoundError

router = APIRouter()


def _get(ctx: OrgContext, grn_id: UUID) -> dict:
    try:
        return dict(InventoryService.get_grn(ctx.db, ctx.tables, grn_id))
    except MovementNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("", response_model=List[GRNResponse])
def list_grns(
    item_code: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    ctx: OrgContext = Depends(get_org_context),
):
    return InventoryService.list_grns(ctx.db, ctx.tables, item_code, limit)


@router.post("", response_model=GRNResponse, status_code=status.HTTP_201_CREATED)
def create_grn(body: GRNCreate, ctx: OrgContext = Depends(get_org_context)):
    """Record goods received. Adds qty_received to the item's current stock."""
    try:
        grn_id = InventoryService.create_grn(ctx.db, ctx.tables, body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _get(ctx, grn_id)


@router.put("/{grn_id}", response_model=GRNResponse)
def update_grn(grn_id: UUID, body: GRNUpdate, ctx: OrgContext = Depends(get_org_context)):
    try:
        InventoryService.update_grn(ctx.db, ctx.tables, grn_id, body.model_dump(exclude_unset=True), ctx.user_id)
    except MovementNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _get(ctx, grn_id)


@router.delete("/{grn_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_grn(grn_id: UUID, ctx: OrgContext = Depends(get_org_context)):
    try:
        InventoryService.delete_grn(ctx.db, ctx.tables, grn_id, ctx.user_id)
    except MovementNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InsufficientStockError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
