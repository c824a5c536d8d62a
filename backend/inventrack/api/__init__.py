"""
API routes for InvenTrack
"""
from .auth import router as auth_router
from .organizations import router as organizations_router
from .categories import router as categories_router
from .items import router as items_router
from .stock import router as stock_router
from .grn import router as grn_router
from .issues import router as issues_router
from .imports import router as imports_router
from .reports import router as reports_router
from .insights import router as insights_router

__all__ = [
    "auth_router",
    "organizations_router",
    "categories_router",
    "items_router",
    "stock_router",
    "grn_router",
    "issues_router",
    "imports_router",
    "reports_router",
    "insights_router",
]
