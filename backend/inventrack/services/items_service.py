"""
Item master service.

Items are keyed by item_code. Every item has exactly one stock row; it is
created with zero quantities when the item is created and removed with it.
"""
from __future__ import annotations

import io
import logging
import uuid
from typing import Iterable, List, Optional
from uuid import UUID

import pandas as pd
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from inventrack.models import TenantTables
from inventrack.services.categories_service import get_category
from inventrack.services.item_code_service import generate_item_code, parse_gsm
from inventrack.utils.quantities import to_float

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"

EXPORT_COLUMNS = [
    "item_code",
    "item_name",
    "category_name",
    "qualifier",
    "gsm",
    "size_mm",
    "uom",
    "usage_type",
    "status",
    "current_stock",
]

# Columns callers may change through update_item
EDITABLE_FIELDS = ("item_name", "category_id", "qualifier", "gsm", "size_mm", "uom", "usage_type", "status")


class DuplicateItemCodeError(ValueError):
    """Raised when an item with the same code already exists."""


class ItemNotFoundError(ValueError):
    pass


class ItemInUseError(ValueError):
    """Raised when deleting an item that has GRN or issue history."""


class ItemCodeGenerationError(ValueError):
    def __init__(self, validation: dict):
        self.validation = validation
        super().__init__("; ".join(validation.get("errors") or ["Item code could not be generated"]))


def _item_query(tables: TenantTables):
    i, c, s = tables.item_master, tables.categories, tables.stock
    return (
        select(
            i,
            c.c.category_name,
            func.coalesce(s.c.current_qty, 0).label("current_qty"),
            func.coalesce(s.c.opening_qty, 0).label("opening_qty"),
        )
        .select_from(
            i.outerjoin(c, c.c.id == i.c.category_id).outerjoin(s, s.c.item_code == i.c.item_code)
        )
    )


def _present(row) -> dict:
    item = dict(row)
    item["gsm"] = to_float(item["gsm"]) if item.get("gsm") is not None else None
    item["current_qty"] = to_float(item.get("current_qty"))
    item["opening_qty"] = to_float(item.get("opening_qty"))
    return item


def existing_item_codes(db: Session, tables: TenantTables, codes: Iterable[str]) -> set:
    codes = {c for c in codes if c}
    if not codes:
        return set()
    i = tables.item_master
    return set(db.execute(select(i.c.item_code).where(i.c.item_code.in_(codes))).scalars().all())


def get_item(db: Session, tables: TenantTables, item_code: str) -> dict:
    row = db.execute(
        _item_query(tables).where(tables.item_master.c.item_code == item_code)
    ).mappings().first()
    if not row:
        raise ItemNotFoundError(f"Item '{item_code}' not found")
    return _present(row)


def list_items(
    db: Session,
    tables: TenantTables,
    search: Optional[str] = None,
    category_id: Optional[UUID] = None,
    status: Optional[str] = None,
    limit: int = 500,
    offset: int = 0,
) -> List[dict]:
    i = tables.item_master
    q = _item_query(tables)
    if search and search.strip():
        term = f"%{search.strip().lower()}%"
        q = q.where(or_(func.lower(i.c.item_name).like(term), func.lower(i.c.item_code).like(term)))
    if category_id:
        q = q.where(i.c.category_id == category_id)
    if status:
        q = q.where(func.lower(i.c.status) == status.strip().lower())
    rows = db.execute(q.order_by(i.c.item_name).limit(limit).offset(offset)).mappings().all()
    return [_present(r) for r in rows]


def list_items_with_stock(db: Session, tables: TenantTables) -> List[dict]:
    """Active items with category name and current quantity (issue/GRN pickers)."""
    i = tables.item_master
    rows = db.execute(
        _item_query(tables).where(func.lower(i.c.status) == "active").order_by(i.c.item_name)
    ).mappings().all()
    result = []
    for r in rows:
        item = _present(r)
        result.append({
            "item_code": item["item_code"],
            "item_name": item["item_name"],
            "uom": item["uom"],
            "category_name": item.get("category_name") or UNCATEGORIZED,
            "current_qty": item["current_qty"],
        })
    return result


def insert_item(db: Session, tables: TenantTables, values: dict, opening_qty: float = 0.0) -> None:
    """Insert item and its stock row. Caller commits."""
    i, s = tables.item_master, tables.stock
    row = {k: values.get(k) for k in EDITABLE_FIELDS if k in values}
    row["item_code"] = values["item_code"]
    row["auto_code"] = values.get("auto_code") or values["item_code"]
    row["uom"] = (row.get("uom") or "PCS").strip()
    row["status"] = (row.get("status") or "active").strip()
    db.execute(i.insert().values(id=uuid.uuid4(), **row))
    db.execute(
        s.insert().values(
            id=uuid.uuid4(), item_code=values["item_code"], opening_qty=opening_qty, current_qty=opening_qty
        )
    )


def create_item(db: Session, tables: TenantTables, data: dict) -> dict:
    """
    Create an item. When no item_code is supplied one is generated from
    category, qualifier, size and GSM.
    """
    values = dict(data)
    if values.get("category_id"):
        category = get_category(db, tables, values["category_id"])
        category_name = category["category_name"]
    else:
        category_name = values.pop("category_name", None)
    gsm, gsm_error = parse_gsm(values.get("gsm"))
    if gsm_error:
        raise ValueError(gsm_error)
    values["gsm"] = gsm

    code = (values.get("item_code") or "").strip()
    if not code:
        generated = generate_item_code(category_name, values.get("qualifier"), values.get("size_mm"), gsm)
        if not generated["success"]:
            raise ItemCodeGenerationError(generated["validation"])
        code = generated["item_code"]
    values["item_code"] = code
    if existing_item_codes(db, tables, [code]):
        raise DuplicateItemCodeError(f"Item code '{code}' already exists")

    insert_item(db, tables, values)
    db.commit()
    logger.info("Created item %s", code)
    return get_item(db, tables, code)


def update_item(db: Session, tables: TenantTables, item_code: str, changes: dict) -> dict:
    get_item(db, tables, item_code)
    values = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
    if "gsm" in values:
        gsm, gsm_error = parse_gsm(values["gsm"])
        if gsm_error:
            raise ValueError(gsm_error)
        values["gsm"] = gsm
    if values.get("category_id"):
        get_category(db, tables, values["category_id"])
    if values:
        i = tables.item_master
        db.execute(i.update().where(i.c.item_code == item_code).values(**values))
        db.commit()
    return get_item(db, tables, item_code)


def delete_item(db: Session, tables: TenantTables, item_code: str) -> None:
    get_item(db, tables, item_code)
    g, iss = tables.grn_log, tables.issue_log
    movements = db.execute(
        select(func.count()).select_from(g).where(g.c.item_code == item_code)
    ).scalar_one() + db.execute(
        select(func.count()).select_from(iss).where(iss.c.item_code == item_code)
    ).scalar_one()
    if movements:
        raise ItemInUseError("Cannot delete item with GRN or issue history. Mark it inactive instead.")
    db.execute(tables.stock.delete().where(tables.stock.c.item_code == item_code))
    db.execute(tables.item_master.delete().where(tables.item_master.c.item_code == item_code))
    db.commit()


def bulk_update(db: Session, tables: TenantTables, item_codes: List[str], status: Optional[str] = None,
                category_id: Optional[UUID] = None) -> int:
    """Set status and/or category for many items. Returns number of rows updated."""
    values = {}
    if status:
        values["status"] = status.strip()
    if category_id:
        get_category(db, tables, category_id)
        values["category_id"] = category_id
    if not values or not item_codes:
        return 0
    i = tables.item_master
    result = db.execute(i.update().where(i.c.item_code.in_(item_codes)).values(**values))
    db.commit()
    logger.info("Bulk updated %s items: %s", result.rowcount, sorted(values))
    return result.rowcount


def export_items_csv(db: Session, tables: TenantTables, item_codes: Optional[List[str]] = None) -> str:
    q = _item_query(tables)
    if item_codes:
        q = q.where(tables.item_master.c.item_code.in_(item_codes))
    rows = [_present(r) for r in db.execute(q.order_by(tables.item_master.c.item_code)).mappings().all()]
    for r in rows:
        r["current_stock"] = r["current_qty"]
    df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)
    buf = io.StringIO()
    df.to_csv(buf, index=False)
    return buf.getvalue()
