"""
Database models for InvenTrack
"""
from inventrack.database import Base

from .organization import Organization
from .user import Profile, UserRole, ROLE_ADMIN, ROLE_USER, VALID_ROLES
from .tenant_tables import (
    TENANT_BASE_TABLES,
    TenantTables,
    ensure_tenant_schema,
    get_table_name,
    get_tenant_tables,
)

__all__ = [
    "Base",
    "Organization",
    "Profile",
    "UserRole",
    "ROLE_ADMIN",
    "ROLE_USER",
    "VALID_ROLES",
    "TENANT_BASE_TABLES",
    "TenantTables",
    "ensure_tenant_schema",
    "get_table_name",
    "get_tenant_tables",
]
