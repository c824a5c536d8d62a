"""
Historical snapshots, export, AI analysis and third-party API status.
"""
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from inventrack.dependencies import OrgContext, get_org_context, require_admin
from inventrack.schemas.insights import AnalyzeRequest, ConnectionTestRequest, SnapshotCaptureRequest
from inventrack.services import ai_insights_service as ai
from inventrack.services import snapshot_service
from inventrack.utils.downloads import attachment

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/snapshots", status_code=status.HTTP_201_CREATED)
def capture_snapshot(body: Optional[SnapshotCaptureRequest] = None, ctx: OrgContext = Depends(get_org_context)):
    snapshot_date = body.snapshot_date if body else None
    return snapshot_service.capture_daily_snapshot(ctx.db, ctx.tables, snapshot_date)


@router.get("/snapshots")
def list_snapshots(limit: int = Query(30, ge=1, le=365), ctx: OrgContext = Depends(get_org_context)):
    return snapshot_service.list_snapshots(ctx.db, ctx.tables, limit)


@router.get("/export")
def export_history(
    format: str = Query("json", description="json or csv"),
    start: Optional[date] = None,
    end: Optional[date] = None,
    ctx: OrgContext = Depends(get_org_context),
):
    """Download stored daily snapshots as JSON or CSV."""
    try:
        content, media_type, filename = snapshot_service.export_history(ctx.db, ctx.tables, format, start, end)
    except snapshot_service.UnsupportedExportFormatError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except snapshot_service.NoHistoricalDataError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return attachment(content, filename, media_type)


@router.post("/analyze")
def analyze(body: AnalyzeRequest, ctx: OrgContext = Depends(get_org_context)):
    start = body.date_range.start if body.date_range else None
    end = body.date_range.end if body.date_range else None
    try:
        return ai.analyze_stock_patterns(ctx.db, ctx.tables, body.query, ctx.user_id, start, end, body.filters)
    except ai.AIConfigurationError as e:
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": str(e)})
    except ai.AIAnalysisError as e:
        logger.error("AI analysis failed for org %s: %s", ctx.organization.code, e.details)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": str(e), "details": e.details},
        )


@router.get("/api-status")
def api_status(ctx: OrgContext = Depends(require_admin)):
    return ai.api_status()


@router.post("/test-connection")
def test_connection(body: ConnectionTestRequest, ctx: OrgContext = Depends(require_admin)):
    return ai.check_api_connection(body.service)
