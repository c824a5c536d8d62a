"""
Stock issue API
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from inventrack.dependencies import OrgContext, get_org_context
from inventrack.schemas.inventory import IssueCreate, IssueResponse, IssueUpdate
from inventrack.services.inventory_service import InventoryService, MovementNotFoundError

router = APIRouter()


def _get(ctx: OrgContext, issue_id: UUID) -> dict:
    try:
        return dict(InventoryService.get_issue(ctx.db, ctx.tables, issue_id))
    except MovementNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("", response_model=List[IssueResponse])
def list_issues(
    item_code: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    ctx: OrgContext = Depends(get_org_context),
):
    return InventoryService.list_issues(ctx.db, ctx.tables, item_code, limit)


@router.post("", response_model=IssueResponse, status_code=status.HTTP_201_CREATED)
def create_issue(body: IssueCreate, ctx: OrgContext = Depends(get_org_context)):
    """Issue stock. Refused with 400 when the quantity exceeds current stock."""
    try:
        issue_id = InventoryService.create_issue(ctx.db, ctx.tables, body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _get(ctx, issue_id)


@router.put("/{issue_id}", response_model=IssueResponse)
def update_issue(issue_id: UUID, body: IssueUpdate, ctx: OrgContext = Depends(get_org_context)):
    try:
        InventoryService.update_issue(ctx.db, ctx.tables, issue_id, body.model_dump(exclude_unset=True), ctx.user_id)
    except MovementNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _get(ctx, issue_id)


@router.delete("/{issue_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_issue(issue_id: UUID, ctx: OrgContext = Depends(get_org_context)):
    try:
        InventoryService.delete_issue(ctx.db, ctx.tables, issue_id, ctx.user_id)
    except MovementNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
