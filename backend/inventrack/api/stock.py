"""
Stock summary and opening stock API
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from inventrack.dependencies import OrgContext, get_org_context
from inventrack.schemas.inventory import OpeningStockEntry
from inventrack.services import stock_summary_service as summary
from inventrack.services.categories_service import CategoryNotFoundError
from inventrack.services.inventory_service import InventoryService
from inventrack.services.items_service import ItemNotFoundError
from inventrack.utils.downloads import attachment

logger = logging.getLogger(__name__)

router = APIRouter()

OPENING_EXPORT_COLUMNS = ["item_code", "item_name", "category_name", "uom", "opening_qty", "current_qty", "difference"]


def _filtered_summary(ctx: OrgContext, search, category, level, sort_by, sort_order):
    rows = summary.compute_stock_summary(ctx.db, ctx.tables)
    try:
        return rows, summary.filter_stock_summary(rows, search, category, level, sort_by, sort_order)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/summary")
def stock_summary(
    search: Optional[str] = None,
    category: Optional[str] = Query(None, description="Category name or 'all'"),
    level: Optional[str] = Query(None, description="low, medium, high or 'all'"),
    sort_by: str = "item_name",
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    ctx: OrgContext = Depends(get_org_context),
):
    """
    Per-item stock summary with consumption and days of cover.
    ``stats`` are computed over all items, before filtering.
    """
    rows, filtered = _filtered_summary(ctx, search, category, level, sort_by, sort_order)
    for r in filtered:
        r["stock_level"] = summary.stock_level(r["current_qty"])
        r["cover_badge"] = summary.cover_badge(r["days_of_cover"])
    return {"items": filtered, "stats": summary.summary_stats(rows)}


@router.get("/summary/export")
def export_stock_summary(
    search: Optional[str] = None,
    category: Optional[str] = None,
    level: Optional[str] = None,
    sort_by: str = "item_name",
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    ctx: OrgContext = Depends(get_org_context),
):
    _, filtered = _filtered_summary(ctx, search, category, level, sort_by, sort_order)
    return attachment(summary.rows_to_csv(filtered, summary.SUMMARY_COLUMNS), "stock_summary.csv")


@router.get("/opening-summary")
def opening_summary(
    search: Optional[str] = None,
    category: Optional[str] = None,
    ctx: OrgContext = Depends(get_org_context),
):
    rows = summary.compute_stock_summary(ctx.db, ctx.tables)
    return summary.opening_stock_summary(rows, search, category)


@router.get("/opening-summary/export")
def export_opening_summary(
    search: Optional[str] = None,
    category: Optional[str] = None,
    ctx: OrgContext = Depends(get_org_context),
):
    rows = summary.compute_stock_summary(ctx.db, ctx.tables)
    result = summary.opening_stock_summary(rows, search, category)
    return attachment(summary.rows_to_csv(result["items"], OPENING_EXPORT_COLUMNS), "opening_stock_summary.csv")


@router.post("/opening", status_code=status.HTTP_201_CREATED)
def set_opening_stock(body: OpeningStockEntry, ctx: OrgContext = Depends(get_org_context)):
    """Manual opening stock entry; optionally creates the item."""
    try:
        return InventoryService.manual_opening_entry(
            ctx.db,
            ctx.tables,
            item_code=body.item_code,
            opening_qty=body.opening_qty,
            item_name=body.item_name,
            uom=body.uom,
            category_id=body.category_id,
            create_item=body.create_item,
        )
    except ItemNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except CategoryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
