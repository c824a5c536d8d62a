"""
Inventory Service - GRN / issue movements and the stock balance they maintain
"""
import logging
import uuid
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventrack.models import TenantTables
from inventrack.services.items_service import ItemNotFoundError, existing_item_codes, insert_item
from inventrack.utils.quantities import json_safe, to_float

logger = logging.getLogger(__name__)

GRN_EDITABLE = ("grn_number", "date", "qty_received", "uom", "invoice_number", "amount_inr", "vendor", "remarks")
ISSUE_EDITABLE = ("date", "purpose", "qty_issued", "remarks")


class InsufficientStockError(ValueError):
    def __init__(self, available: float, requested: float):
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient stock. Available: {available:g}, Requested: {requested:g}")


class MovementNotFoundError(ValueError):
    pass


def _require_positive(value, label: str) -> float:
    qty = to_float(value, default=-1)
    if qty <= 0:
        raise ValueError(f"{label} must be greater than 0")
    return qty


class InventoryService:
    """Stock movements. Every movement keeps stock.current_qty in step."""

    @staticmethod
    def get_stock_row(db: Session, tables: TenantTables, item_code: str):
        s = tables.stock
        return db.execute(select(s).where(s.c.item_code == item_code)).mappings().first()

    @staticmethod
    def get_current_stock(db: Session, tables: TenantTables, item_code: str) -> float:
        row = InventoryService.get_stock_row(db, tables, item_code)
        return to_float(row["current_qty"]) if row else 0.0

    @staticmethod
    def current_stock_map(db: Session, tables: TenantTables, item_codes) -> Dict[str, float]:
        codes = {c for c in item_codes if c}
        if not codes:
            return {}
        s = tables.stock
        rows = db.execute(select(s.c.item_code, s.c.current_qty).where(s.c.item_code.in_(codes))).all()
        return {code: to_float(qty) for code, qty in rows}

    @staticmethod
    def _adjust_stock(db: Session, tables: TenantTables, item_code: str, delta: float) -> float:
        """Add delta to current_qty, creating the stock row if needed. Returns new qty."""
        s = tables.stock
        row = InventoryService.get_stock_row(db, tables, item_code)
        if row is None:
            db.execute(s.insert().values(id=uuid.uuid4(), item_code=item_code, opening_qty=0, current_qty=delta))
            return delta
        new_qty = to_float(row["current_qty"]) + delta
        db.execute(s.update().where(s.c.item_code == item_code).values(current_qty=new_qty))
        return new_qty

    @staticmethod
    def _require_item(db: Session, tables: TenantTables, item_code: str) -> None:
        if not existing_item_codes(db, tables, [item_code]):
            raise ItemNotFoundError(f"Item code '{item_code}' does not exist in item master")

    @staticmethod
    def _audit(db: Session, table, key: str, movement_id, action: str, old, new, user_id) -> None:
        db.execute(
            table.insert().values(
                id=uuid.uuid4(),
                **{key: movement_id},
                action=action,
                old_values=json_safe(dict(old)) if old is not None else None,
                new_values=json_safe(dict(new)) if new is not None else None,
                user_id=user_id,
            )
        )

    # -------------------------------------------------------------------------
    # GRN
    # -------------------------------------------------------------------------

    @staticmethod
    def get_grn(db: Session, tables: TenantTables, grn_id: UUID):
        g = tables.grn_log
        row = db.execute(select(g).where(g.c.id == grn_id)).mappings().first()
        if not row:
            raise MovementNotFoundError("GRN not found")
        return row

    @staticmethod
    def create_grn(db: Session, tables: TenantTables, data: dict, commit: bool = True) -> UUID:
        item_code = (data.get("item_code") or "").strip()
        qty = _require_positive(data.get("qty_received"), "Quantity received")
        InventoryService._require_item(db, tables, item_code)
        grn_id = uuid.uuid4()
        db.execute(
            tables.grn_log.insert().values(
                id=grn_id,
                grn_number=data["grn_number"].strip(),
                date=data["date"],
                item_code=item_code,
                qty_received=qty,
                uom=data["uom"].strip(),
                invoice_number=data.get("invoice_number"),
                amount_inr=data.get("amount_inr"),
                vendor=data.get("vendor"),
                remarks=data.get("remarks"),
            )
        )
        InventoryService._adjust_stock(db, tables, item_code, qty)
        if commit:
            db.commit()
        return grn_id

    @staticmethod
    def update_grn(db: Session, tables: TenantTables, grn_id: UUID, changes: dict, user_id=None):
        old = InventoryService.get_grn(db, tables, grn_id)
        values = {k: v for k, v in changes.items() if k in GRN_EDITABLE and v is not None}
        if "qty_received" in values:
            values["qty_received"] = _require_positive(values["qty_received"], "Quantity received")
            delta = values["qty_received"] - to_float(old["qty_received"])
            if delta < 0:
                available = InventoryService.get_current_stock(db, tables, old["item_code"])
                if available + delta < 0:
                    raise InsufficientStockError(available, -delta)
            InventoryService._adjust_stock(db, tables, old["item_code"], delta)
        g = tables.grn_log
        if values:
            db.execute(g.update().where(g.c.id == grn_id).values(**values))
        new = db.execute(select(g).where(g.c.id == grn_id)).mappings().first()
        InventoryService._audit(db, tables.grn_audit_log, "grn_id", grn_id, "UPDATE", old, new, user_id)
        db.commit()
        return new

    @staticmethod
    def delete_grn(db: Session, tables: TenantTables, grn_id: UUID, user_id=None) -> None:
        old = InventoryService.get_grn(db, tables, grn_id)
        qty = to_float(old["qty_received"])
        available = InventoryService.get_current_stock(db, tables, old["item_code"])
        if available < qty:
            raise InsufficientStockError(available, qty)
        InventoryService._adjust_stock(db, tables, old["item_code"], -qty)
        db.execute(tables.grn_log.delete().where(tables.grn_log.c.id == grn_id))
        InventoryService._audit(db, tables.grn_audit_log, "grn_id", grn_id, "DELETE", old, None, user_id)
        db.commit()
        logger.info("Deleted GRN %s (%s, %s)", old["grn_number"], old["item_code"], qty)

    @staticmethod
    def list_grns(db: Session, tables: TenantTables, item_code: Optional[str] = None, limit: int = 100) -> List[dict]:
        g, i = tables.grn_log, tables.item_master
        q = select(g, i.c.item_name).select_from(g.outerjoin(i, i.c.item_code == g.c.item_code))
        if item_code:
            q = q.where(g.c.item_code == item_code)
        rows = db.execute(q.order_by(g.c.date.desc(), g.c.created_at.desc()).limit(limit)).mappings().all()
        return [dict(r) for r in rows]

    @staticmethod
    def existing_grn_keys(db: Session, tables: TenantTables, grn_numbers) -> set:
        """{(grn_number, item_code)} already stored for the given GRN numbers."""
        numbers = {n for n in grn_numbers if n}
        if not numbers:
            return set()
        g = tables.grn_log
        rows = db.execute(select(g.c.grn_number, g.c.item_code).where(g.c.grn_number.in_(numbers))).all()
        return {(n, c) for n, c in rows}

    # -------------------------------------------------------------------------
    # Issues
    # -------------------------------------------------------------------------

    @staticmethod
    def get_issue(db: Session, tables: TenantTables, issue_id: UUID):
        t = tables.issue_log
        row = db.execute(select(t).where(t.c.id == issue_id)).mappings().first()
        if not row:
            raise MovementNotFoundError("Issue not found")
        return row

    @staticmethod
    def _total_issued(db: Session, tables: TenantTables, item_code: str) -> float:
        t = tables.issue_log
        total = db.execute(
            select(func.coalesce(func.sum(t.c.qty_issued), 0)).where(t.c.item_code == item_code)
        ).scalar_one()
        return to_float(total)

    @staticmethod
    def create_issue(db: Session, tables: TenantTables, data: dict, commit: bool = True) -> UUID:
        item_code = (data.get("item_code") or "").strip()
        qty = _require_positive(data.get("qty_issued"), "Quantity issued")
        purpose = (data.get("purpose") or "").strip()
        if not purpose:
            raise ValueError("Purpose is required")
        InventoryService._require_item(db, tables, item_code)
        available = InventoryService.get_current_stock(db, tables, item_code)
        if available < qty:
            raise InsufficientStockError(available, qty)
        issue_id = uuid.uuid4()
        db.execute(
            tables.issue_log.insert().values(
                id=issue_id,
                date=data["date"],
                item_code=item_code,
                purpose=purpose,
                qty_issued=qty,
                remarks=data.get("remarks"),
                total_issued_qty=InventoryService._total_issued(db, tables, item_code) + qty,
            )
        )
        InventoryService._adjust_stock(db, tables, item_code, -qty)
        if commit:
            db.commit()
        return issue_id

    @staticmethod
    def update_issue(db: Session, tables: TenantTables, issue_id: UUID, changes: dict, user_id=None):
        old = InventoryService.get_issue(db, tables, issue_id)
        values = {k: v for k, v in changes.items() if k in ISSUE_EDITABLE and v is not None}
        if "purpose" in values and not str(values["purpose"]).strip():
            raise ValueError("Purpose is required")
        if "qty_issued" in values:
            values["qty_issued"] = _require_positive(values["qty_issued"], "Quantity issued")
            delta = values["qty_issued"] - to_float(old["qty_issued"])
            if delta > 0:
                available = InventoryService.get_current_stock(db, tables, old["item_code"])
                if available < delta:
                    raise InsufficientStockError(available, delta)
            InventoryService._adjust_stock(db, tables, old["item_code"], -delta)
        t = tables.issue_log
        if values:
            db.execute(t.update().where(t.c.id == issue_id).values(**values))
        new = db.execute(select(t).where(t.c.id == issue_id)).mappings().first()
        InventoryService._audit(db, tables.issue_audit_log, "issue_id", issue_id, "UPDATE", old, new, user_id)
        db.commit()
        return new

    @staticmethod
    def delete_issue(db: Session, tables: TenantTables, issue_id: UUID, user_id=None) -> None:
        old = InventoryService.get_issue(db, tables, issue_id)
        InventoryService._adjust_stock(db, tables, old["item_code"], to_float(old["qty_issued"]))
        db.execute(tables.issue_log.delete().where(tables.issue_log.c.id == issue_id))
        InventoryService._audit(db, tables.issue_audit_log, "issue_id", issue_id, "DELETE", old, None, user_id)
        db.commit()

    @staticmethod
    def list_issues(db: Session, tables: TenantTables, item_code: Optional[str] = None, limit: int = 100) -> List[dict]:
        t, i = tables.issue_log, tables.item_master
        q = select(t, i.c.item_name).select_from(t.outerjoin(i, i.c.item_code == t.c.item_code))
        if item_code:
            q = q.where(t.c.item_code == item_code)
        rows = db.execute(q.order_by(t.c.date.desc(), t.c.created_at.desc()).limit(limit)).mappings().all()
        return [dict(r) for r in rows]

    # -------------------------------------------------------------------------
    # Opening stock
    # -------------------------------------------------------------------------

    @staticmethod
    def set_opening_stock(db: Session, tables: TenantTables, item_code: str, qty: float) -> None:
        """Upsert stock row with opening_qty = current_qty = qty. Caller commits."""
        s = tables.stock
        if InventoryService.get_stock_row(db, tables, item_code) is None:
            db.execute(s.insert().values(id=uuid.uuid4(), item_code=item_code, opening_qty=qty, current_qty=qty))
        else:
            db.execute(s.update().where(s.c.item_code == item_code).values(opening_qty=qty, current_qty=qty))

    @staticmethod
    def manual_opening_entry(
        db: Session,
        tables: TenantTables,
        item_code: str,
        opening_qty: float,
        item_name: Optional[str] = None,
        uom: Optional[str] = None,
        category_id: Optional[UUID] = None,
        create_item: bool = False,
    ) -> dict:
        item_code = (item_code or "").strip()
        if not item_code:
            raise ValueError("Item code is required")
        if opening_qty is None or to_float(opening_qty, -1) < 0:
            raise ValueError("Opening quantity must be zero or more")
        exists = bool(existing_item_codes(db, tables, [item_code]))
        if not exists:
            if not create_item:
                raise ItemNotFoundError(f"Item code '{item_code}' does not exist in item master")
            insert_item(db, tables, {
                "item_code": item_code,
                "item_name": (item_name or "").strip() or item_code,
                "uom": uom or "PCS",
                "category_id": category_id,
                "status": "active",
            })
        InventoryService.set_opening_stock(db, tables, item_code, to_float(opening_qty))
        db.commit()
        logger.info("Opening stock for %s set to %s", item_code, opening_qty)
        return {"item_code": item_code, "opening_qty": to_float(opening_qty), "item_created": not exists}
