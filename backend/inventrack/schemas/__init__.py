"""
Pydantic schemas for request/response validation
"""
from .item import (
    CategoryCreate, CategoryUpdate, CategoryResponse,
    ItemCreate, ItemUpdate, ItemResponse, ItemWithStock, ItemBulkUpdate, ItemExportRequest,
    ItemCodePreviewRequest, ItemCodePreviewResponse,
)
from .inventory import (
    GRNCreate, GRNUpdate, GRNResponse,
    IssueCreate, IssueUpdate, IssueResponse,
    OpeningStockEntry, StockSummaryRow,
)
from .user import (
    RegisterRequest, LoginRequest, RefreshRequest, TokenResponse,
    OrganizationCreate, OrganizationResponse, ProfileResponse, MeResponse,
    SwitchOrganizationRequest, RoleUpdate, ApprovalUpdate,
)
from .insights import AnalyzeRequest, ConnectionTestRequest, DateRange, SnapshotCaptureRequest

__all__ = [
    # Items / categories
    "CategoryCreate",
    "CategoryUpdate",
    "CategoryResponse",
    "ItemCreate",
    "ItemUpdate",
    "ItemResponse",
    "ItemWithStock",
    "ItemBulkUpdate",
    "ItemExportRequest",
    "ItemCodePreviewRequest",
    "ItemCodePreviewResponse",
    # Stock
    "GRNCreate",
    "GRNUpdate",
    "GRNResponse",
    "IssueCreate",
    "IssueUpdate",
    "IssueResponse",
    "OpeningStockEntry",
    "StockSummaryRow",
    # Auth / organizations
    "RegisterRequest",
    "LoginRequest",
    "RefreshRequest",
    "TokenResponse",
    "OrganizationCreate",
    "OrganizationResponse",
    "ProfileResponse",
    "MeResponse",
    "SwitchOrganizationRequest",
    "RoleUpdate",
    "ApprovalUpdate",
    # Insights
    "AnalyzeRequest",
    "ConnectionTestRequest",
    "DateRange",
    "SnapshotCaptureRequest",
]
