"""
InvenTrack - Main FastAPI Application
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from inventrack.config import settings
from inventrack.database import Base, SessionLocal, engine

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Multi-organization inventory: items, GRN, issues, stock analytics",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


@app.on_event("startup")
def create_schema():
    """Create the shared tables and every active organization's prefixed tables."""
    from inventrack.services.organization_service import ensure_all_tenant_schemas

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        count = ensure_all_tenant_schemas(db)
        logger.info("Inventory tables ready for %s table prefix(es)", count)
    finally:
        db.close()
    if not settings.OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY is not set; AI analysis will return errors until it is configured.")


# Import and include routers
from inventrack.api import (  # noqa: E402
    auth_router,
    categories_router,
    grn_router,
    imports_router,
    insights_router,
    issues_router,
    items_router,
    organizations_router,
    reports_router,
    stock_router,
)

app.include_router(auth_router, prefix="/api/auth", tags=["Authentication"])
app.include_router(organizations_router, prefix="/api/organizations", tags=["Organizations & Users"])
app.include_router(categories_router, prefix="/api/categories", tags=["Categories"])
app.include_router(items_router, prefix="/api/items", tags=["Items"])
app.include_router(stock_router, prefix="/api/stock", tags=["Stock"])
app.include_router(grn_router, prefix="/api/grn", tags=["GRN"])
app.include_router(issues_router, prefix="/api/issues", tags=["Issues"])
app.include_router(imports_router, prefix="/api/uploads", tags=["CSV Upload"])
app.include_router(reports_router, prefix="/api/reports", tags=["Dashboard & Reports"])
app.include_router(insights_router, prefix="/api/insights", tags=["History & AI"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("inventrack.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
