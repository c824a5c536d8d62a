"""
Categories API
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from inventrack.dependencies import OrgContext, get_org_context
from inventrack.schemas.item import CategoryCreate, CategoryResponse, CategoryUpdate
from inventrack.services import categories_service as categories

router = APIRouter()


@router.get("", response_model=List[CategoryResponse])
def list_categories(ctx: OrgContext = Depends(get_org_context)):
    return categories.list_categories(ctx.db, ctx.tables)


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(body: CategoryCreate, ctx: OrgContext = Depends(get_org_context)):
    try:
        return categories.create_category(ctx.db, ctx.tables, body.category_name, body.description)
    except categories.DuplicateCategoryError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.put("/{category_id}", response_model=CategoryResponse)
def update_category(category_id: UUID, body: CategoryUpdate, ctx: OrgContext = Depends(get_org_context)):
    try:
        return categories.update_category(ctx.db, ctx.tables, category_id, body.category_name, body.description)
    except categories.CategoryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except categories.DuplicateCategoryError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_category(category_id: UUID, ctx: OrgContext = Depends(get_org_context)):
    try:
        categories.delete_category(ctx.db, ctx.tables, category_id)
    except categories.CategoryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except categories.CategoryInUseError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
