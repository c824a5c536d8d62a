"""
Stock movement (GRN / issue) and stock summary schemas
"""
from pydantic import BaseModel, Field
from typing import Optional
import datetime as dt
from uuid import UUID


class GRNCreate(BaseModel):
    grn_number: str = Field(..., min_length=1, max_length=100)
    date: dt.date
    item_code: str = Field(..., min_length=1)
    qty_received: float = Field(..., gt=0)
    uom: str = Field(..., min_length=1)
    invoice_number: Optional[str] = None
    amount_inr: Optional[float] = None
    vendor: Optional[str] = None
    remarks: Optional[str] = None


class GRNUpdate(BaseModel):
    grn_number: Optional[str] = None
    date: Optional[dt.date] = None
    qty_received: Optional[float] = Field(None, gt=0)
    uom: Optional[str] = None
    invoice_number: Optional[str] = None
    amount_inr: Optional[float] = None
    vendor: Optional[str] = None
    remarks: Optional[str] = None


class GRNResponse(BaseModel):
    id: UUID
    grn_number: str
    date: dt.date
    item_code: str
    item_name: Optional[str] = None
    qty_received: float
    uom: str
    invoice_number: Optional[str] = None
    amount_inr: Optional[float] = None
    vendor: Optional[str] = None
    remarks: Optional[str] = None
    created_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class IssueCreate(BaseModel):
    date: dt.date
    item_code: str = Field(..., min_length=1)
    qty_issued: float = Field(..., gt=0)
    purpose: str = Field(..., min_length=1)
    remarks: Optional[str] = None


class IssueUpdate(BaseModel):
    date: Optional[dt.date] = None
    qty_issued: Optional[float] = Field(None, gt=0)
    purpose: Optional[str] = None
    remarks: Optional[str] = None


class IssueResponse(BaseModel):
    id: UUID
    date: dt.date
    item_code: str
    item_name: Optional[str] = None
    purpose: str
    qty_issued: float
    remarks: Optional[str] = None
    total_issued_qty: Optional[float] = None
    created_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class OpeningStockEntry(BaseModel):
    """Manual opening stock for one item; creates the item when asked to."""
    item_code: str = Field(..., min_length=1)
    opening_qty: float = Field(..., ge=0)
    create_item: bool = False
    item_name: Optional[str] = None
    uom: Optional[str] = None
    category_id: Optional[UUID] = None


class StockSummaryRow(BaseModel):
    item_code: str
    item_name: str
    category_name: Optional[str] = None
    uom: Optional[str] = None
    opening_qty: float
    current_qty: float
    calculated_qty: float
    total_grn_qty: float
    total_issued_qty: float
    issue_30d: float
    unique_issue_days: int
    consumption_rate_per_day: float
    days_of_cover: float
    stock_validation_status: str
    stock_level: Optional[str] = None
    cover_badge: Optional[str] = None
