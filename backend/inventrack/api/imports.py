"""
CSV bulk upload API: item master, GRN, issues and opening stock.

Each pipeline has a preview endpoint (validate only) and an import endpoint.
GRN and issue imports are all-or-nothing at validation time: any row error
rejects the file with 400 and the list of errors.
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status

from inventrack.dependencies import OrgContext, get_org_context
from inventrack.services import csv_import_service as csv_import
from inventrack.utils.downloads import attachment, read_csv_upload

logger = logging.getLogger(__name__)

router = APIRouter()


def _run(func, *args, **kwargs):
    """Call a pipeline function, mapping its errors to HTTP 400."""
    try:
        return func(*args, **kwargs)
    except csv_import.CSVValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(e), "errors": e.errors},
        )
    except csv_import.CSVFormatError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _parse_resolutions(raw: Optional[str]) -> dict:
    if not raw:
        return {}
    try:
        resolutions = json.loads(raw)
    except json.JSONDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="resolutions must be a JSON object")
    if not isinstance(resolutions, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="resolutions must be a JSON object")
    invalid = [v for v in resolutions.values() if v not in (csv_import.ACTION_SKIP, csv_import.ACTION_UPDATE)]
    if invalid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Resolution must be 'skip' or 'update'")
    try:
        return {int(k): v for k, v in resolutions.items()}
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Resolution keys must be row numbers")


@router.post("/item-master/preview")
async def preview_item_master(file: UploadFile = File(...), ctx: OrgContext = Depends(get_org_context)):
    """Validate an item master file and report code conflicts without writing anything."""
    content = await read_csv_upload(file)
    return _run(csv_import.preview_item_master, ctx.db, ctx.tables, content)


@router.post("/item-master")
async def import_item_master(
    file: UploadFile = File(...),
    resolutions: Optional[str] = Form(None, description='JSON: {"<row>": "skip" | "update"}'),
    ctx: OrgContext = Depends(get_org_context),
):
    content = await read_csv_upload(file)
    parsed = _parse_resolutions(resolutions)
    result = _run(
        csv_import.import_item_master, ctx.db, ctx.tables, content, file.filename, ctx.user_id, parsed
    )
    logger.info(
        "Item master upload %s (org %s): %s inserted, %s updated, %s skipped, %s errors",
        file.filename, ctx.organization.code,
        result["inserted"], result["updated"], result["skipped"], len(result["errors"]),
    )
    return result


@router.post("/grn/preview")
async def preview_grn(file: UploadFile = File(...), ctx: OrgContext = Depends(get_org_context)):
    content = await read_csv_upload(file)
    return _run(csv_import.preview_grn, ctx.db, ctx.tables, content)


@router.post("/grn")
async def import_grn(file: UploadFile = File(...), ctx: OrgContext = Depends(get_org_context)):
    content = await read_csv_upload(file)
    return _run(csv_import.import_grn, ctx.db, ctx.tables, content, file.filename, ctx.user_id)


@router.post("/issues/preview")
async def preview_issues(file: UploadFile = File(...), ctx: OrgContext = Depends(get_org_context)):
    content = await read_csv_upload(file)
    return _run(csv_import.preview_issues, ctx.db, ctx.tables, content)


@router.post("/issues")
async def import_issues(file: UploadFile = File(...), ctx: OrgContext = Depends(get_org_context)):
    content = await read_csv_upload(file)
    return _run(csv_import.import_issues, ctx.db, ctx.tables, content, file.filename, ctx.user_id)


@router.post("/opening-stock")
async def import_opening_stock(
    file: UploadFile = File(...),
    dry_run: bool = Query(False, description="Only check the file"),
    ctx: OrgContext = Depends(get_org_context),
):
    content = await read_csv_upload(file)
    return _run(
        csv_import.import_opening_stock, ctx.db, ctx.tables, content, file.filename, ctx.user_id, dry_run=dry_run
    )


@router.get("/templates/{name}")
def download_template(name: str):
    """Sample CSV for one of: item_master, grn, issue, opening_stock."""
    try:
        content = csv_import.render_template(name)
    except KeyError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown template '{name}'")
    return attachment(content, f"{name}_template.csv")


@router.get("/logs")
def list_upload_logs(
    file_type: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    ctx: OrgContext = Depends(get_org_context),
):
    return csv_import.list_upload_logs(ctx.db, ctx.tables, file_type, limit)
