"""
CSV Import Service - bulk uploads for item master, GRN, issues and opening stock

Every pipeline follows the same steps:
1. Parse the file (pandas, all cells as trimmed strings, keys lower-cased)
2. Check headers (case-insensitive)
3. Validate rows; cross-check against the database (items, stock, duplicates)
4. Write rows one at a time so a bad row never takes the batch down with it
5. Record one csv_upload_log row for the upload

Row numbers in errors are spreadsheet row numbers: the header is row 1, so the
first data row is row 2.
"""
import io
import logging
import uuid
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

import pandas as pd
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventrack.config import settings
from inventrack.models import TenantTables
from inventrack.services.categories_service import (
    CSV_IMPORT_DESCRIPTION,
    CSV_UPLOAD_DESCRIPTION,
    find_or_create_category,
)
from inventrack.services.inventory_service import InventoryService
from inventrack.services.item_code_service import generate_item_code, parse_gsm
from inventrack.services.items_service import existing_item_codes, insert_item
from inventrack.utils.quantities import json_safe, parse_quantity

logger = logging.getLogger(__name__)

FILE_TYPE_ITEM_MASTER = "item_master"
FILE_TYPE_GRN = "grn"
FILE_TYPE_ISSUE = "issue"
FILE_TYPE_OPENING_STOCK = "opening_stock"

ITEM_MASTER_REQUIRED = ["item_name", "category_name", "uom"]
ITEM_MASTER_OPTIONAL = ["qualifier", "gsm", "size_mm", "usage_type", "status"]
GRN_REQUIRED = ["grn_number", "date", "item_code", "qty_received", "uom"]
GRN_OPTIONAL = ["invoice_number", "amount_inr", "vendor", "remarks"]
ISSUE_REQUIRED = ["date", "item_code", "qty_issued", "purpose"]
ISSUE_OPTIONAL = ["remarks"]
OPENING_STOCK_EXPECTED = ["item_code", "opening_qty", "item_name", "category", "uom"]

DATE_FORMATS = ("%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%Y/%m/%d", "%d.%m.%Y")

FIELD_LABELS = {
    "grn_number": "GRN number",
    "date": "Date",
    "item_code": "Item code",
    "qty_received": "Quantity received",
    "qty_issued": "Quantity issued",
    "uom": "UOM",
    "purpose": "Purpose",
}

# Conflict types / actions for item master uploads
CONFLICT_EXISTING_CODE = "EXISTING_CODE"
CONFLICT_DUPLICATE_IN_FILE = "DUPLICATE_IN_FILE"
CONFLICT_VALIDATION_ERROR = "VALIDATION_ERROR"
ACTION_SKIP = "skip"
ACTION_UPDATE = "update"
ACTION_ERROR = "error"

TEMPLATES: Dict[str, Tuple[List[str], List[List]]] = {
    FILE_TYPE_OPENING_STOCK: (
        ["item_code", "item_name", "category", "opening_qty", "uom"],
        [
            ["RAW001", "Raw Material Sample", "Raw Materials", 100, "KG"],
            ["PKG001", "Packaging Sample", "Packaging", 50, "PCS"],
        ],
    ),
    FILE_TYPE_GRN: (
        GRN_REQUIRED + GRN_OPTIONAL,
        [
            ["GRN001", "2024-01-15", "RAW001", 100, "KG", "INV001", 5000, "Sample Vendor", "Sample GRN"],
        ],
    ),
    FILE_TYPE_ISSUE: (
        ISSUE_REQUIRED + ISSUE_OPTIONAL,
        [
            ["2024-01-16", "RAW001", 25, "Production", "Sample issue"],
        ],
    ),
    FILE_TYPE_ITEM_MASTER: (
        ITEM_MASTER_REQUIRED + ITEM_MASTER_OPTIONAL,
        [
            ["Premium Art Paper", "Paper", "KG", "PREMIUM", 80, "1000x700", "Printing", "active"],
            ["Corrugated Box", "Packaging", "PCS", "3PLY", "", "300x200x150", "Packing", "active"],
        ],
    ),
}


class CSVFormatError(ValueError):
    """File could not be used at all (empty, unreadable, missing headers)."""


class CSVValidationError(ValueError):
    """Rows failed validation; nothing was written."""

    def __init__(self, errors: List[dict]):
        self.errors = errors
        super().__init__(f"{len(errors)} validation error(s)")


# -----------------------------------------------------------------------------
# Parsing helpers
# -----------------------------------------------------------------------------

def _decode(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("latin-1")


def parse_csv(content: bytes) -> Tuple[List[str], List[Dict[str, str]]]:
    """
    Parse CSV bytes into (headers, rows). Headers keep their original case
    (trimmed, quotes stripped); row dicts are keyed by lower-cased header.
    Quoted commas are honoured and blank lines skipped.
    """
    text = _decode(content or b"")
    if not text.strip():
        raise CSVFormatError("CSV file is empty")
    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            skipinitialspace=True,
        )
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        raise CSVFormatError(f"Could not parse CSV: {e}") from e

    headers = [str(h).strip().strip('"').strip() for h in df.columns]
    keys = [h.lower() for h in headers]
    rows = []
    for record in df.itertuples(index=False, name=None):
        rows.append({k: (str(v).strip() if v is not None else "") for k, v in zip(keys, record)})
    return headers, rows


def missing_headers(headers: List[str], required: List[str]) -> List[str]:
    present = {h.strip().lower() for h in headers}
    return [r for r in required if r.lower() not in present]


def require_headers(headers: List[str], required: List[str]) -> None:
    missing = missing_headers(headers, required)
    if missing:
        raise CSVFormatError(f"Missing required headers: {', '.join(missing)}")


def row_number(index: int) -> int:
    return index + 2


def parse_date(value: str) -> Optional[date]:
    text = (value or "").strip()
    if not text:
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def _error(index: int, message: str, field: Optional[str] = None, data: Optional[dict] = None) -> dict:
    err = {"row": row_number(index), "message": message}
    if field:
        err["field"] = field
    if data is not None:
        err["data"] = data
    return err


def _db_error_message(e: SQLAlchemyError) -> str:
    """Driver message only; the SQL statement and bound parameters stay in the log."""
    return f"Database error: {str(getattr(e, 'orig', None) or e)[:200]}"


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


def _batches(rows: List, size: int):
    size = max(1, size)
    for start in range(0, len(rows), size):
        yield start, rows[start:start + size]


def log_upload(
    db: Session,
    tables: TenantTables,
    user_id,
    file_name: str,
    file_type: str,
    total_rows: int,
    success_rows: int,
    errors: List[dict],
) -> None:
    """Write the csv_upload_log row. Failures are logged; the upload result stands."""
    try:
        db.execute(
            tables.csv_upload_log.insert().values(
                id=uuid.uuid4(),
                user_id=user_id,
                file_name=file_name or "upload.csv",
                file_type=file_type,
                total_rows=total_rows,
                success_rows=success_rows,
                error_rows=len(errors),
                errors=json_safe(errors),
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to write csv_upload_log for %s (%s)", file_name, file_type)


def list_upload_logs(db: Session, tables: TenantTables, file_type: Optional[str] = None, limit: int = 50):
    t = tables.csv_upload_log
    q = select(t)
    if file_type:
        q = q.where(t.c.file_type == file_type)
    return [dict(r) for r in db.execute(q.order_by(t.c.created_at.desc()).limit(limit)).mappings().all()]


def render_template(name: str) -> str:
    if name not in TEMPLATES:
        raise KeyError(name)
    headers, rows = TEMPLATES[name]
    buf = io.StringIO()
    pd.DataFrame(rows, columns=headers).to_csv(buf, index=False)
    return buf.getvalue()


# -----------------------------------------------------------------------------
# Item master
# -----------------------------------------------------------------------------

def validate_item_master_rows(rows: List[dict]) -> List[dict]:
    errors = []
    for idx, row in enumerate(rows):
        if not row.get("item_name"):
            errors.append(_error(idx, "Item name is required", "item_name"))
        if not row.get("category_name"):
            errors.append(_error(idx, "Category name is required", "category_name"))
        if not row.get("uom"):
            errors.append(_error(idx, "UOM is required", "uom"))
        gsm_raw = row.get("gsm")
        if gsm_raw:
            _, gsm_error = parse_gsm(gsm_raw)
            if gsm_error:
                errors.append(_error(idx, gsm_error, "gsm"))
    return errors


def _code_for_row(row: dict) -> dict:
    return generate_item_code(row.get("category_name"), row.get("qualifier"), row.get("size_mm"), row.get("gsm"))


def check_item_master_conflicts(db: Session, tables: TenantTables, rows: List[dict]) -> List[dict]:
    """
    Generate a code for each row and report rows that cannot be inserted as-is.
    Nothing is written.
    """
    conflicts = []
    generated: Dict[int, str] = {}
    for idx, row in enumerate(rows):
        result = _code_for_row(row)
        if not result["success"]:
            conflicts.append({
                "row": row_number(idx),
                "item_name": row.get("item_name"),
                "item_code": None,
                "type": CONFLICT_VALIDATION_ERROR,
                "action": ACTION_ERROR,
                "message": "; ".join(result["validation"]["errors"]),
                "warnings": result["validation"]["warnings"],
            })
            continue
        generated[idx] = result["item_code"]

    existing = existing_item_codes(db, tables, generated.values())
    seen: Dict[str, int] = {}
    for idx, code in generated.items():
        row = rows[idx]
        warnings = _code_for_row(row)["validation"]["warnings"]
        if code in seen:
            conflicts.append({
                "row": row_number(idx),
                "item_name": row.get("item_name"),
                "item_code": code,
                "type": CONFLICT_DUPLICATE_IN_FILE,
                "action": ACTION_SKIP,
                "message": f"Item code '{code}' is also generated by row {seen[code]}",
                "warnings": warnings,
            })
            continue
        seen[code] = row_number(idx)
        if code in existing:
            conflicts.append({
                "row": row_number(idx),
                "item_name": row.get("item_name"),
                "item_code": code,
                "type": CONFLICT_EXISTING_CODE,
                "action": ACTION_SKIP,
                "message": f"Item code '{code}' already exists",
                "warnings": warnings,
            })
    conflicts.sort(key=lambda c: c["row"])
    return conflicts


def preview_item_master(db: Session, tables: TenantTables, content: bytes) -> dict:
    headers, rows = parse_csv(content)
    require_headers(headers, ITEM_MASTER_REQUIRED)
    errors = validate_item_master_rows(rows)
    conflicts = [] if errors else check_item_master_conflicts(db, tables, rows)
    return {"total": len(rows), "errors": errors, "conflicts": conflicts}


def _item_values(row: dict, category_id, item_code: str) -> dict:
    gsm, _ = parse_gsm(row.get("gsm"))
    return {
        "item_code": item_code,
        "auto_code": item_code,
        "item_name": row["item_name"].strip(),
        "category_id": category_id,
        "qualifier": _blank_to_none(row.get("qualifier")),
        "gsm": gsm,
        "size_mm": _blank_to_none(row.get("size_mm")),
        "uom": row["uom"].strip(),
        "usage_type": _blank_to_none(row.get("usage_type")),
        "status": _blank_to_none(row.get("status")) or "active",
    }


def import_item_master(
    db: Session,
    tables: TenantTables,
    content: bytes,
    file_name: str,
    user_id=None,
    resolutions: Optional[Dict[int, str]] = None,
) -> dict:
    """
    Insert items from an item master CSV.

    ``resolutions`` maps spreadsheet row numbers to ``skip`` or ``update`` for
    rows whose generated code already exists; unresolved existing codes are
    skipped.
    """
    headers, rows = parse_csv(content)
    require_headers(headers, ITEM_MASTER_REQUIRED)
    errors = validate_item_master_rows(rows)
    if errors:
        raise CSVValidationError(errors)

    resolutions = {int(k): v for k, v in (resolutions or {}).items()}
    created_categories: List[str] = []
    inserted = updated = skipped = 0
    errors = []
    seen_codes = set()
    i = tables.item_master

    for start, batch in _batches(rows, settings.CSV_BATCH_SIZE):
        for offset, row in enumerate(batch):
            idx = start + offset
            try:
                result = _code_for_row(row)
                if not result["success"]:
                    errors.append(_error(idx, "; ".join(result["validation"]["errors"]), data=row))
                    continue
                code = result["item_code"]
                if code in seen_codes:
                    skipped += 1
                    continue
                seen_codes.add(code)

                exists = bool(existing_item_codes(db, tables, [code]))
                action = resolutions.get(row_number(idx), ACTION_SKIP) if exists else None
                if action == ACTION_SKIP:
                    skipped += 1
                    continue

                category_id, created = find_or_create_category(
                    db, tables, row["category_name"], description=CSV_UPLOAD_DESCRIPTION
                )
                values = _item_values(row, category_id, code)
                if action == ACTION_UPDATE:
                    values.pop("item_code")
                    values.pop("auto_code")
                    db.execute(i.update().where(i.c.item_code == code).values(**values))
                    updated += 1
                else:
                    insert_item(db, tables, values)
                    inserted += 1
                db.commit()
                if created:
                    created_categories.append(row["category_name"].strip())
            except SQLAlchemyError as e:
                db.rollback()
                logger.warning("Item master row %s failed: %s", row_number(idx), e)
                errors.append(_error(idx, _db_error_message(e), data=row))
        logger.info("Item master import: processed %s/%s rows", min(start + len(batch), len(rows)), len(rows))

    success = inserted + updated
    log_upload(db, tables, user_id, file_name, FILE_TYPE_ITEM_MASTER, len(rows), success, errors)
    return {
        "success": success,
        "inserted": inserted,
        "updated": updated,
        "skipped": skipped,
        "errors": errors,
        "total": len(rows),
        "created_categories": created_categories,
    }


# -----------------------------------------------------------------------------
# GRN
# -----------------------------------------------------------------------------

def _validate_movement_fields(rows: List[dict], required: List[str], qty_field: str) -> List[dict]:
    errors = []
    for idx, row in enumerate(rows):
        for field in required:
            if not row.get(field):
                errors.append(_error(idx, f"{FIELD_LABELS.get(field, field)} is required", field))
        if row.get("date") and parse_date(row["date"]) is None:
            errors.append(_error(idx, "Invalid date format", "date"))
        if row.get(qty_field):
            qty = parse_quantity(row[qty_field])
            if qty is None or qty <= 0:
                errors.append(_error(idx, "Quantity must be a positive number", qty_field))
    return errors


def _validate_item_codes(db: Session, tables: TenantTables, rows: List[dict]) -> List[dict]:
    known = existing_item_codes(db, tables, [r.get("item_code") for r in rows])
    return [
        _error(idx, f"Item code '{row['item_code']}' does not exist in item master", "item_code")
        for idx, row in enumerate(rows)
        if row["item_code"] not in known
    ]


def validate_grn_rows(db: Session, tables: TenantTables, rows: List[dict]) -> List[dict]:
    errors = _validate_movement_fields(rows, GRN_REQUIRED, "qty_received")
    for idx, row in enumerate(rows):
        amount = row.get("amount_inr")
        if amount and parse_quantity(amount) is None:
            errors.append(_error(idx, "Amount must be a number", "amount_inr"))
    if errors:
        return errors

    errors = _validate_item_codes(db, tables, rows)
    if errors:
        return errors

    stored = InventoryService.existing_grn_keys(db, tables, [r["grn_number"] for r in rows])
    seen = set()
    for idx, row in enumerate(rows):
        key = (row["grn_number"], row["item_code"])
        if key in seen:
            errors.append(_error(
                idx,
                f"Duplicate GRN number '{key[0]}' with item code '{key[1]}' found in CSV",
                "grn_number",
            ))
        elif key in stored:
            errors.append(_error(
                idx,
                f"GRN number '{key[0]}' with item code '{key[1]}' already exists in database",
                "grn_number",
            ))
        seen.add(key)
    return errors


def preview_grn(db: Session, tables: TenantTables, content: bytes) -> dict:
    headers, rows = parse_csv(content)
    require_headers(headers, GRN_REQUIRED)
    return {"total": len(rows), "errors": validate_grn_rows(db, tables, rows)}


def import_grn(db: Session, tables: TenantTables, content: bytes, file_name: str, user_id=None) -> dict:
    headers, rows = parse_csv(content)
    require_headers(headers, GRN_REQUIRED)
    errors = validate_grn_rows(db, tables, rows)
    if errors:
        raise CSVValidationError(errors)

    success = 0
    for start, batch in _batches(rows, settings.CSV_BATCH_SIZE):
        for offset, row in enumerate(batch):
            idx = start + offset
            try:
                InventoryService.create_grn(db, tables, {
                    "grn_number": row["grn_number"],
                    "date": parse_date(row["date"]),
                    "item_code": row["item_code"],
                    "qty_received": parse_quantity(row["qty_received"]),
                    "uom": row["uom"],
                    "invoice_number": _blank_to_none(row.get("invoice_number")),
                    "amount_inr": parse_quantity(row.get("amount_inr")),
                    "vendor": _blank_to_none(row.get("vendor")),
                    "remarks": _blank_to_none(row.get("remarks")),
                })
                success += 1
            except ValueError as e:
                db.rollback()
                errors.append(_error(idx, str(e), data=row))
            except SQLAlchemyError as e:
                db.rollback()
                logger.warning("GRN row %s failed: %s", row_number(idx), e)
                errors.append(_error(idx, _db_error_message(e), data=row))
    log_upload(db, tables, user_id, file_name, FILE_TYPE_GRN, len(rows), success, errors)
    logger.info("GRN import %s: %s/%s rows", file_name, success, len(rows))
    return {"success": success, "errors": errors, "total": len(rows)}


# -----------------------------------------------------------------------------
# Issues
# -----------------------------------------------------------------------------

def validate_issue_rows(db: Session, tables: TenantTables, rows: List[dict]) -> List[dict]:
    errors = _validate_movement_fields(rows, ISSUE_REQUIRED, "qty_issued")
    if errors:
        return errors
    errors = _validate_item_codes(db, tables, rows)
    if errors:
        return errors

    # Rows are applied in order, so each row sees the stock left by the rows above it.
    available = InventoryService.current_stock_map(db, tables, [r["item_code"] for r in rows])
    for idx, row in enumerate(rows):
        qty = parse_quantity(row["qty_issued"])
        on_hand = available.get(row["item_code"], 0.0)
        if qty > on_hand:
            errors.append(_error(
                idx,
                f"Insufficient stock. Available: {on_hand:g}, Requested: {qty:g}",
                "qty_issued",
            ))
            continue
        available[row["item_code"]] = on_hand - qty
    return errors


def preview_issues(db: Session, tables: TenantTables, content: bytes) -> dict:
    headers, rows = parse_csv(content)
    require_headers(headers, ISSUE_REQUIRED)
    return {"total": len(rows), "errors": validate_issue_rows(db, tables, rows)}


def import_issues(db: Session, tables: TenantTables, content: bytes, file_name: str, user_id=None) -> dict:
    headers, rows = parse_csv(content)
    require_headers(headers, ISSUE_REQUIRED)
    errors = validate_issue_rows(db, tables, rows)
    if errors:
        raise CSVValidationError(errors)

    success = 0
    for start, batch in _batches(rows, settings.CSV_BATCH_SIZE):
        for offset, row in enumerate(batch):
            idx = start + offset
            try:
                InventoryService.create_issue(db, tables, {
                    "date": parse_date(row["date"]),
                    "item_code": row["item_code"],
                    "qty_issued": parse_quantity(row["qty_issued"]),
                    "purpose": row["purpose"],
                    "remarks": _blank_to_none(row.get("remarks")),
                })
                success += 1
            except ValueError as e:
                db.rollback()
                errors.append(_error(idx, str(e), data=row))
            except SQLAlchemyError as e:
                db.rollback()
                logger.warning("Issue row %s failed: %s", row_number(idx), e)
                errors.append(_error(idx, _db_error_message(e), data=row))
    log_upload(db, tables, user_id, file_name, FILE_TYPE_ISSUE, len(rows), success, errors)
    logger.info("Issue import %s: %s/%s rows", file_name, success, len(rows))
    return {"success": success, "errors": errors, "total": len(rows)}


# -----------------------------------------------------------------------------
# Opening stock
# -----------------------------------------------------------------------------

def _match_opening_columns(headers: List[str]) -> Tuple[Dict[str, str], List[str]]:
    """
    Map expected fields to actual (lower-cased) headers by substring, treating
    spaces and hyphens as underscores ("Item Code" matches item_code).
    Returns (mapping, warnings for fields with no matching column).
    """
    keys = {h.lower(): h.lower().replace(" ", "_").replace("-", "_") for h in headers}
    mapping, warnings = {}, []
    for field in OPENING_STOCK_EXPECTED:
        match = (
            next((k for k, norm in keys.items() if norm == field), None)
            or next((k for k, norm in keys.items() if field in norm), None)
        )
        if match:
            mapping[field] = match
        else:
            warnings.append(f"Column '{field}' not found")
    return mapping, warnings


def import_opening_stock(
    db: Session,
    tables: TenantTables,
    content: bytes,
    file_name: str,
    user_id=None,
    dry_run: bool = False,
) -> dict:
    headers, rows = parse_csv(content)
    mapping, warnings = _match_opening_columns(headers)
    if "item_code" not in mapping:
        raise CSVFormatError("Missing required headers: item_code")

    def cell(row, field):
        return (row.get(mapping[field]) or "").strip() if field in mapping else ""

    errors = []
    if dry_run:
        for idx, row in enumerate(rows):
            if not cell(row, "item_code"):
                errors.append({"row": idx + 1, "message": "Item code is required"})
        return {"total": len(rows), "errors": errors, "warnings": warnings}

    success = 0
    for start, batch in _batches(rows, settings.OPENING_STOCK_BATCH_SIZE):
        for offset, row in enumerate(batch):
            idx = start + offset
            item_code = cell(row, "item_code")
            if not item_code:
                errors.append({"row": idx + 1, "message": "Item code is required"})
                continue
            try:
                category_id = None
                category_name = cell(row, "category")
                if category_name:
                    category_id, _ = find_or_create_category(
                        db, tables, category_name, description=CSV_IMPORT_DESCRIPTION
                    )
                item_name = cell(row, "item_name") or item_code
                uom = cell(row, "uom") or "PCS"
                i = tables.item_master
                if existing_item_codes(db, tables, [item_code]):
                    values = {"item_name": item_name, "uom": uom, "status": "active"}
                    if category_id:
                        values["category_id"] = category_id
                    db.execute(i.update().where(i.c.item_code == item_code).values(**values))
                else:
                    insert_item(db, tables, {
                        "item_code": item_code,
                        "item_name": item_name,
                        "category_id": category_id,
                        "uom": uom,
                        "status": "active",
                    })
                qty = parse_quantity(cell(row, "opening_qty")) or 0.0
                InventoryService.set_opening_stock(db, tables, item_code, qty)
                db.commit()
                success += 1
            except ValueError as e:
                db.rollback()
                errors.append({"row": idx + 1, "message": str(e), "data": row})
            except SQLAlchemyError as e:
                db.rollback()
                logger.warning("Opening stock row %s failed: %s", idx + 1, e)
                errors.append({"row": idx + 1, "message": _db_error_message(e), "data": row})
        logger.info("Opening stock import: processed %s/%s rows", min(start + len(batch), len(rows)), len(rows))

    log_upload(db, tables, user_id, file_name, FILE_TYPE_OPENING_STOCK, len(rows), success, errors)
    return {"success": success, "errors": errors, "total": len(rows), "warnings": warnings}
