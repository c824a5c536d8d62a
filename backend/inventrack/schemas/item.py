"""
Item and category schemas for request/response validation.
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime
from uuid import UUID


class CategoryBase(BaseModel):
    category_name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None

    @field_validator("category_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Category name is required")
        return v


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(BaseModel):
    category_name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None


class CategoryResponse(CategoryBase):
    id: UUID
    item_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ItemBase(BaseModel):
    """Item master fields. item_code is generated when omitted."""
    item_name: str = Field(..., min_length=1, max_length=255)
    category_id: Optional[UUID] = None
    qualifier: Optional[str] = Field(None, max_length=100)
    gsm: Optional[float] = Field(None, description="Paper/board weight in g/m²")
    size_mm: Optional[str] = Field(None, max_length=100, description="Size, e.g. 1000x700")
    uom: str = Field(default="PCS", min_length=1, max_length=20)
    usage_type: Optional[str] = None
    status: str = Field(default="active")


class ItemCreate(ItemBase):
    item_code: Optional[str] = Field(None, max_length=100, description="Leave empty to generate")


class ItemUpdate(BaseModel):
    item_name: Optional[str] = Field(None, min_length=1, max_length=255)
    category_id: Optional[UUID] = None
    qualifier: Optional[str] = None
    gsm: Optional[float] = None
    size_mm: Optional[str] = None
    uom: Optional[str] = None
    usage_type: Optional[str] = None
    status: Optional[str] = None


class ItemResponse(ItemBase):
    id: UUID
    item_code: str
    auto_code: Optional[str] = None
    category_name: Optional[str] = None
    current_qty: float = 0
    opening_qty: float = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ItemWithStock(BaseModel):
    item_code: str
    item_name: str
    uom: str
    category_name: str
    current_qty: float


class ItemBulkUpdate(BaseModel):
    item_codes: List[str] = Field(..., min_length=1)
    status: Optional[str] = None
    category_id: Optional[UUID] = None


class ItemExportRequest(BaseModel):
    item_codes: Optional[List[str]] = None


class ItemCodePreviewRequest(BaseModel):
    category_name: str
    qualifier: Optional[str] = None
    size_mm: Optional[str] = None
    gsm: Optional[str] = None


class ItemCodeValidation(BaseModel):
    errors: List[str] = []
    warnings: List[str] = []


class ItemCodePreviewResponse(BaseModel):
    success: bool
    item_code: Optional[str] = None
    validation: ItemCodeValidation
