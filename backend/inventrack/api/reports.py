"""
Dashboard, stock alerts and analytics
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from inventrack.dependencies import OrgContext, get_org_context
from inventrack.services import analytics_service
from inventrack.services.stock_summary_service import compute_stock_summary, rows_to_csv
from inventrack.utils.downloads import attachment

router = APIRouter()

ALERT_EXPORT_COLUMNS = [
    "item_code",
    "item_name",
    "category_name",
    "current_qty",
    "consumption_rate_per_day",
    "days_of_cover",
    "alert_level",
]


def _alerts(ctx: OrgContext, search, category, alert_type) -> dict:
    rows = compute_stock_summary(ctx.db, ctx.tables)
    try:
        return analytics_service.build_alerts(rows, search, category, alert_type)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/dashboard")
def dashboard(ctx: OrgContext = Depends(get_org_context)):
    return analytics_service.dashboard(ctx.db, ctx.tables)


@router.get("/alerts")
def stock_alerts(
    search: Optional[str] = None,
    category: Optional[str] = None,
    alert_type: Optional[str] = Query(None, description="critical, low, medium, out_of_stock or 'all'"),
    ctx: OrgContext = Depends(get_org_context),
):
    return _alerts(ctx, search, category, alert_type)


@router.get("/alerts/export")
def export_stock_alerts(
    search: Optional[str] = None,
    category: Optional[str] = None,
    alert_type: Optional[str] = None,
    ctx: OrgContext = Depends(get_org_context),
):
    result = _alerts(ctx, search, category, alert_type)
    return attachment(rows_to_csv(result["alerts"], ALERT_EXPORT_COLUMNS), "stock_alerts.csv")


@router.get("/analytics")
def analytics(ctx: OrgContext = Depends(get_org_context)):
    return analytics_service.analytics(ctx.db, ctx.tables)
