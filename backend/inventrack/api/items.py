"""
Items API routes
"""
import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from inventrack.dependencies import OrgContext, get_org_context
from inventrack.schemas.item import (
    ItemBulkUpdate,
    ItemCodePreviewRequest,
    ItemCodePreviewResponse,
    ItemCreate,
    ItemExportRequest,
    ItemResponse,
    ItemUpdate,
    ItemWithStock,
)
from inventrack.services import items_service as items
from inventrack.services.categories_service import CategoryNotFoundError
from inventrack.services.item_code_service import generate_item_code
from inventrack.utils.downloads import attachment

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=List[ItemResponse])
def list_items(
    search: Optional[str] = Query(None, description="Match item name or code"),
    category_id: Optional[UUID] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(500, ge=1, le=5000),
    offset: int = Query(0, ge=0),
    ctx: OrgContext = Depends(get_org_context),
):
    return items.list_items(ctx.db, ctx.tables, search, category_id, status_filter, limit, offset)


@router.get("/with-stock", response_model=List[ItemWithStock])
def list_items_with_stock(ctx: OrgContext = Depends(get_org_context)):
    """Active items with current quantity, for GRN / issue forms."""
    return items.list_items_with_stock(ctx.db, ctx.tables)


@router.post("/code-preview", response_model=ItemCodePreviewResponse)
def preview_item_code(body: ItemCodePreviewRequest, ctx: OrgContext = Depends(get_org_context)):
    return generate_item_code(body.category_name, body.qualifier, body.size_mm, body.gsm)


@router.post("/bulk-update")
def bulk_update_items(body: ItemBulkUpdate, ctx: OrgContext = Depends(get_org_context)):
    if not body.status and not body.category_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Nothing to update")
    try:
        updated = items.bulk_update(ctx.db, ctx.tables, body.item_codes, body.status, body.category_id)
    except CategoryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return {"updated": updated}


@router.post("/export")
def export_items(body: ItemExportRequest, ctx: OrgContext = Depends(get_org_context)):
    content = items.export_items_csv(ctx.db, ctx.tables, body.item_codes)
    return attachment(content, "items_export.csv")


@router.get("/{item_code}", response_model=ItemResponse)
def get_item(item_code: str, ctx: OrgContext = Depends(get_org_context)):
    try:
        return items.get_item(ctx.db, ctx.tables, item_code)
    except items.ItemNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("", response_model=ItemResponse, status_code=status.HTTP_201_CREATED)
def create_item(body: ItemCreate, ctx: OrgContext = Depends(get_org_context)):
    """Create an item. item_code is generated from category, qualifier, size and GSM when omitted."""
    try:
        return items.create_item(ctx.db, ctx.tables, body.model_dump())
    except CategoryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except items.DuplicateItemCodeError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except items.ItemCodeGenerationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(e), "validation": e.validation},
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.put("/{item_code}", response_model=ItemResponse)
def update_item(item_code: str, body: ItemUpdate, ctx: OrgContext = Depends(get_org_context)):
    try:
        return items.update_item(ctx.db, ctx.tables, item_code, body.model_dump(exclude_unset=True))
    except (items.ItemNotFoundError, CategoryNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/{item_code}", status_code=status.HTTP_204_NO_CONTENT)
def delete_item(item_code: str, ctx: OrgContext = Depends(get_org_context)):
    try:
        items.delete_item(ctx.db, ctx.tables, item_code)
    except items.ItemNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except items.ItemInUseError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    logger.info("Deleted item %s (org %s)", item_code, ctx.organization.code)
