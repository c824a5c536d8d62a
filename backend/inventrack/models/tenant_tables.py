"""
Per-organization inventory tables.

Every organization owns the same set of inventory tables; only the names
differ. ``get_table_name`` maps a base name to the organization's physical
table, and ``get_tenant_tables`` returns the SQLAlchemy Core tables bound to
those names. Tables are built once per prefix and cached.
"""
import logging
import re
import threading
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import (
    JSON,
    Column,
    Date,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.types import TIMESTAMP

logger = logging.getLogger(__name__)

TENANT_BASE_TABLES = (
    "categories",
    "item_master",
    "stock",
    "grn_log",
    "issue_log",
    "csv_upload_log",
    "daily_stock_snapshots",
    "stock_analytics_queries",
    "grn_audit_log",
    "issue_audit_log",
)

TABLE_PREFIX_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")

# Quantities: 3 decimals covers KG/MTR fractions
QTY = Numeric(14, 3)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_prefix(prefix: Optional[str]) -> str:
    """Lower-case and validate a table prefix. Empty string means base tables."""
    value = (prefix or "").strip().lower().rstrip("_")
    if value and not TABLE_PREFIX_PATTERN.match(value):
        raise ValueError(f"Invalid table prefix '{prefix}'")
    return value


def get_table_name(base_name: str, organization=None) -> str:
    """
    Physical table name for ``base_name`` in ``organization``.

    ``organization`` may be an Organization row, a prefix string, or None.
    No organization, or one without a prefix, resolves to the base name.
    """
    if organization is None:
        return base_name
    prefix = organization if isinstance(organization, str) else getattr(organization, "table_prefix", None)
    prefix = normalize_prefix(prefix)
    if not prefix:
        return base_name
    return f"{prefix}_{base_name}"


class TenantTables:
    """Core tables for one table prefix."""

    def __init__(self, prefix: str = ""):
        self.prefix = normalize_prefix(prefix)
        self.metadata = MetaData()
        name = lambda base: get_table_name(base, self.prefix)  # noqa: E731

        self.categories = Table(
            name("categories"), self.metadata,
            Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4),
            Column("category_name", String(255), nullable=False, unique=True),
            Column("description", Text),
            Column("created_at", TIMESTAMP(timezone=True), default=_utcnow),
            Column("updated_at", TIMESTAMP(timezone=True), default=_utcnow, onupdate=_utcnow),
        )

        self.item_master = Table(
            name("item_master"), self.metadata,
            Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4),
            Column("item_code", String(100), nullable=False, unique=True),
            Column("item_name", String(255), nullable=False),
            Column("category_id", UUID(as_uuid=True), ForeignKey(f"{name('categories')}.id"), nullable=True),
            Column("qualifier", String(100)),
            Column("gsm", Numeric(10, 2)),
            Column("size_mm", String(100)),
            Column("uom", String(20), nullable=False, default="PCS"),
            Column("usage_type", String(100)),
            Column("status", String(20), nullable=False, default="active"),
            Column("auto_code", String(100)),
            Column("created_at", TIMESTAMP(timezone=True), default=_utcnow),
            Column("updated_at", TIMESTAMP(timezone=True), default=_utcnow, onupdate=_utcnow),
        )

        self.stock = Table(
            name("stock"), self.metadata,
            Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4),
            Column(
                "item_code", String(100),
                ForeignKey(f"{name('item_master')}.item_code", ondelete="CASCADE"),
                nullable=False, unique=True,
            ),
            Column("opening_qty", QTY, nullable=False, default=0),
            Column("current_qty", QTY, nullable=False, default=0),
            Column("last_updated", TIMESTAMP(timezone=True), default=_utcnow, onupdate=_utcnow),
        )

        self.grn_log = Table(
            name("grn_log"), self.metadata,
            Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4),
            Column("grn_number", String(100), nullable=False, index=True),
            Column("date", Date, nullable=False),
            Column("item_code", String(100), ForeignKey(f"{name('item_master')}.item_code"), nullable=False, index=True),
            Column("qty_received", QTY, nullable=False),
            Column("uom", String(20), nullable=False),
            Column("invoice_number", String(100)),
            Column("amount_inr", Numeric(14, 2)),
            Column("vendor", String(255)),
            Column("remarks", Text),
            Column("created_at", TIMESTAMP(timezone=True), default=_utcnow),
        )

        self.issue_log = Table(
            name("issue_log"), self.metadata,
            Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4),
            Column("date", Date, nullable=False),
            Column("item_code", String(100), ForeignKey(f"{name('item_master')}.item_code"), nullable=False, index=True),
            Column("purpose", String(255), nullable=False),
            Column("qty_issued", QTY, nullable=False),
            Column("remarks", Text),
            Column("total_issued_qty", QTY),
            Column("created_at", TIMESTAMP(timezone=True), default=_utcnow),
        )

        self.csv_upload_log = Table(
            name("csv_upload_log"), self.metadata,
            Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4),
            Column("user_id", UUID(as_uuid=True), nullable=True),
            Column("file_name", String(255), nullable=False),
            Column("file_type", String(50), nullable=False),
            Column("total_rows", Integer, nullable=False, default=0),
            Column("success_rows", Integer, nullable=False, default=0),
            Column("error_rows", Integer, nullable=False, default=0),
            Column("errors", JSON),
            Column("created_at", TIMESTAMP(timezone=True), default=_utcnow),
        )

        self.daily_stock_snapshots = Table(
            name("daily_stock_snapshots"), self.metadata,
            Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4),
            Column("snapshot_date", Date, nullable=False, unique=True),
            Column("snapshot_data", JSON, nullable=False),
            Column("record_count", Integer, nullable=False, default=0),
            Column("metadata", JSON),
            Column("created_at", TIMESTAMP(timezone=True), default=_utcnow),
            Column("updated_at", TIMESTAMP(timezone=True), default=_utcnow, onupdate=_utcnow),
        )

        self.stock_analytics_queries = Table(
            name("stock_analytics_queries"), self.metadata,
            Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4),
            Column("user_id", UUID(as_uuid=True), nullable=True),
            Column("query_text", Text, nullable=False),
            Column("query_type", String(50), nullable=False, default="general"),
            Column("query_result", JSON),
            Column("filters", JSON),
            Column("date_range_start", Date),
            Column("date_range_end", Date),
            Column("execution_time_ms", Integer),
            Column("created_at", TIMESTAMP(timezone=True), default=_utcnow),
        )

        self.grn_audit_log = Table(
            name("grn_audit_log"), self.metadata,
            Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4),
            Column("grn_id", UUID(as_uuid=True), nullable=False, index=True),
            Column("action", String(20), nullable=False),
            Column("old_values", JSON),
            Column("new_values", JSON),
            Column("user_id", UUID(as_uuid=True)),
            Column("created_at", TIMESTAMP(timezone=True), default=_utcnow),
        )

        self.issue_audit_log = Table(
            name("issue_audit_log"), self.metadata,
            Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4),
            Column("issue_id", UUID(as_uuid=True), nullable=False, index=True),
            Column("action", String(20), nullable=False),
            Column("old_values", JSON),
            Column("new_values", JSON),
            Column("user_id", UUID(as_uuid=True)),
            Column("created_at", TIMESTAMP(timezone=True), default=_utcnow),
        )

    def __repr__(self):
        return f"<TenantTables prefix={self.prefix!r}>"


_registry: Dict[str, TenantTables] = {}
_registry_lock = threading.Lock()


def get_tenant_tables(organization=None) -> TenantTables:
    """Cached TenantTables for an organization (or prefix string). Thread-safe."""
    prefix = normalize_prefix(
        organization if isinstance(organization, str) or organization is None
        else getattr(organization, "table_prefix", None)
    )
    with _registry_lock:
        if prefix not in _registry:
            _registry[prefix] = TenantTables(prefix)
        return _registry[prefix]


def ensure_tenant_schema(bind, organization=None) -> TenantTables:
    """Create any missing inventory tables for the organization."""
    tables = get_tenant_tables(organization)
    tables.metadata.create_all(bind=bind, checkfirst=True)
    logger.info("Tenant schema ready (prefix=%r)", tables.prefix or "")
    return tables
