"""
Categories service. Names are unique per organization, case-insensitively.
"""
import logging
import uuid
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventrack.models import TenantTables

logger = logging.getLogger(__name__)

CSV_UPLOAD_DESCRIPTION = "Auto-created from CSV upload"
CSV_IMPORT_DESCRIPTION = "Auto-created from CSV import"


class DuplicateCategoryError(ValueError):
    """Raised when a category with the same name (case-insensitive) exists."""


class CategoryInUseError(ValueError):
    """Raised when deleting a category that still has items."""


class CategoryNotFoundError(ValueError):
    pass


def _clean_name(name: Optional[str]) -> str:
    value = (name or "").strip()
    if not value:
        raise ValueError("Category name is required")
    return value


def find_category_by_name(db: Session, tables: TenantTables, name: str):
    t = tables.categories
    return db.execute(
        select(t).where(func.lower(t.c.category_name) == name.strip().lower())
    ).mappings().first()


def get_category(db: Session, tables: TenantTables, category_id: UUID):
    t = tables.categories
    row = db.execute(select(t).where(t.c.id == category_id)).mappings().first()
    if not row:
        raise CategoryNotFoundError("Category not found")
    return dict(row)


def list_categories(db: Session, tables: TenantTables):
    """All categories ordered by name, each with its active item count."""
    c, i = tables.categories, tables.item_master
    counts = (
        select(i.c.category_id, func.count(i.c.id).label("item_count"))
        .where(func.lower(i.c.status) == "active")
        .group_by(i.c.category_id)
        .subquery()
    )
    rows = db.execute(
        select(c, func.coalesce(counts.c.item_count, 0).label("item_count"))
        .select_from(c.outerjoin(counts, counts.c.category_id == c.c.id))
        .order_by(c.c.category_name)
    ).mappings().all()
    return [dict(r) for r in rows]


def create_category(db: Session, tables: TenantTables, name: str, description: Optional[str] = None):
    name = _clean_name(name)
    if find_category_by_name(db, tables, name):
        raise DuplicateCategoryError(f"Category '{name}' already exists")
    t = tables.categories
    new_id = uuid.uuid4()
    db.execute(t.insert().values(id=new_id, category_name=name, description=description))
    db.commit()
    logger.info("Created category %s (%s)", name, tables.prefix or "base")
    return get_category(db, tables, new_id)


def update_category(db: Session, tables: TenantTables, category_id: UUID, name: Optional[str] = None,
                    description: Optional[str] = None):
    current = get_category(db, tables, category_id)
    values = {}
    if name is not None:
        name = _clean_name(name)
        existing = find_category_by_name(db, tables, name)
        if existing and existing["id"] != current["id"]:
            raise DuplicateCategoryError(f"Category '{name}' already exists")
        values["category_name"] = name
    if description is not None:
        values["description"] = description
    if values:
        t = tables.categories
        db.execute(t.update().where(t.c.id == category_id).values(**values))
        db.commit()
    return get_category(db, tables, category_id)


def delete_category(db: Session, tables: TenantTables, category_id: UUID) -> None:
    get_category(db, tables, category_id)
    i = tables.item_master
    in_use = db.execute(
        select(func.count()).select_from(i).where(i.c.category_id == category_id)
    ).scalar_one()
    if in_use:
        raise CategoryInUseError("Cannot delete category that has items. Please reassign items first.")
    t = tables.categories
    db.execute(t.delete().where(t.c.id == category_id))
    db.commit()


def find_or_create_category(
    db: Session,
    tables: TenantTables,
    name: str,
    description: str = CSV_UPLOAD_DESCRIPTION,
    commit: bool = False,
) -> Tuple[UUID, bool]:
    """Return (category_id, created). Lookup is case-insensitive."""
    name = _clean_name(name)
    existing = find_category_by_name(db, tables, name)
    if existing:
        return existing["id"], False
    t = tables.categories
    new_id = uuid.uuid4()
    db.execute(t.insert().values(id=new_id, category_name=name, description=description))
    if commit:
        db.commit()
    else:
        db.flush()
    logger.info("Auto-created category %s", name)
    return new_id, True
