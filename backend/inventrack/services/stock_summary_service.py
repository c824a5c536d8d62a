"""
Stock summary: one row per item combining the stock balance with GRN and
issue totals, 30-day consumption and days of cover.

    calculated_qty  = opening_qty + total_grn_qty - total_issued_qty
    validation      = OK when calculated_qty == current_qty else MISMATCH
    consumption/day = issue_30d / 30
    days_of_cover   = current_qty / consumption/day, or NO_USAGE_DAYS_OF_COVER
"""
import io
import logging
from datetime import date, timedelta
from typing import List, Optional

import pandas as pd
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventrack.models import TenantTables
from inventrack.utils.quantities import to_float

logger = logging.getLogger(__name__)

NO_USAGE_DAYS_OF_COVER = 999999
CONSUMPTION_WINDOW_DAYS = 30
QTY_TOLERANCE = 0.001

LOW_STOCK_THRESHOLD = 10
HIGH_STOCK_THRESHOLD = 100

SORT_FIELDS = ("item_name", "current_qty", "days_of_cover", "category_name", "item_code")

SUMMARY_COLUMNS = [
    "item_code",
    "item_name",
    "category_name",
    "uom",
    "opening_qty",
    "current_qty",
    "calculated_qty",
    "total_grn_qty",
    "total_issued_qty",
    "issue_30d",
    "unique_issue_days",
    "consumption_rate_per_day",
    "days_of_cover",
    "stock_validation_status",
]


def stock_level(qty: float) -> str:
    if qty < LOW_STOCK_THRESHOLD:
        return "low"
    if qty < HIGH_STOCK_THRESHOLD:
        return "medium"
    return "high"


def cover_badge(days_of_cover: float) -> str:
    """critical <= 10 days, medium <= 30, good otherwise (including no usage)."""
    if days_of_cover <= 10:
        return "critical"
    if days_of_cover <= 30:
        return "medium"
    return "good"


def compute_stock_summary(db: Session, tables: TenantTables, as_of: Optional[date] = None) -> List[dict]:
    """Stock summary rows for every item, ordered by item name."""
    i, c, s, g, iss = tables.item_master, tables.categories, tables.stock, tables.grn_log, tables.issue_log
    as_of = as_of or date.today()
    window_start = as_of - timedelta(days=CONSUMPTION_WINDOW_DAYS)

    grn_totals = (
        select(g.c.item_code, func.sum(g.c.qty_received).label("total_grn_qty"))
        .group_by(g.c.item_code)
        .subquery()
    )
    issue_totals = (
        select(iss.c.item_code, func.sum(iss.c.qty_issued).label("total_issued_qty"))
        .group_by(iss.c.item_code)
        .subquery()
    )
    recent = (
        select(
            iss.c.item_code,
            func.sum(iss.c.qty_issued).label("issue_30d"),
            func.count(func.distinct(iss.c.date)).label("unique_issue_days"),
        )
        .where(iss.c.date >= window_start, iss.c.date <= as_of)
        .group_by(iss.c.item_code)
        .subquery()
    )

    q = (
        select(
            i.c.item_code,
            i.c.item_name,
            i.c.uom,
            i.c.status,
            c.c.category_name,
            s.c.opening_qty,
            s.c.current_qty,
            grn_totals.c.total_grn_qty,
            issue_totals.c.total_issued_qty,
            recent.c.issue_30d,
            recent.c.unique_issue_days,
        )
        .select_from(
            i.outerjoin(c, c.c.id == i.c.category_id)
            .outerjoin(s, s.c.item_code == i.c.item_code)
            .outerjoin(grn_totals, grn_totals.c.item_code == i.c.item_code)
            .outerjoin(issue_totals, issue_totals.c.item_code == i.c.item_code)
            .outerjoin(recent, recent.c.item_code == i.c.item_code)
        )
        .order_by(i.c.item_name)
    )

    rows = []
    for r in db.execute(q).mappings():
        opening = to_float(r["opening_qty"])
        current = to_float(r["current_qty"])
        total_grn = to_float(r["total_grn_qty"])
        total_issued = to_float(r["total_issued_qty"])
        issue_30d = to_float(r["issue_30d"])
        calculated = opening + total_grn - total_issued
        rate = issue_30d / CONSUMPTION_WINDOW_DAYS
        days = round(current / rate, 1) if rate > 0 else NO_USAGE_DAYS_OF_COVER
        rows.append({
            "item_code": r["item_code"],
            "item_name": r["item_name"],
            "category_name": r["category_name"],
            "uom": r["uom"],
            "status": r["status"],
            "opening_qty": opening,
            "current_qty": current,
            "calculated_qty": calculated,
            "total_grn_qty": total_grn,
            "total_issued_qty": total_issued,
            "issue_30d": issue_30d,
            "unique_issue_days": int(r["unique_issue_days"] or 0),
            "consumption_rate_per_day": round(rate, 3),
            "days_of_cover": days,
            "stock_validation_status": "OK" if abs(calculated - current) < QTY_TOLERANCE else "MISMATCH",
        })
    return rows


def filter_stock_summary(
    rows: List[dict],
    search: Optional[str] = None,
    category: Optional[str] = None,
    level: Optional[str] = None,
    sort_by: str = "item_name",
    sort_order: str = "asc",
) -> List[dict]:
    result = rows
    if search and search.strip():
        term = search.strip().lower()
        result = [
            r for r in result
            if term in (r["item_name"] or "").lower() or term in (r["item_code"] or "").lower()
        ]
    if category and category != "all":
        result = [r for r in result if (r.get("category_name") or "") == category]
    if level and level != "all":
        result = [r for r in result if stock_level(r["current_qty"]) == level]
    if sort_by not in SORT_FIELDS:
        raise ValueError(f"Unsupported sort field '{sort_by}'")
    numeric = sort_by in ("current_qty", "days_of_cover")
    return sorted(
        result,
        key=lambda r: r[sort_by] if numeric else (r[sort_by] or "").lower(),
        reverse=(sort_order or "asc").lower() == "desc",
    )


def summary_stats(rows: List[dict]) -> dict:
    return {
        "total_items": len(rows),
        "low_stock": sum(1 for r in rows if r["current_qty"] < LOW_STOCK_THRESHOLD),
        "total_quantity": sum(r["current_qty"] for r in rows),
        "zero_stock": sum(1 for r in rows if r["current_qty"] == 0),
    }


def opening_stock_summary(rows: List[dict], search: Optional[str] = None, category: Optional[str] = None) -> dict:
    """Opening vs current quantities with totals."""
    filtered = filter_stock_summary(rows, search=search, category=category)
    items = [
        {
            "item_code": r["item_code"],
            "item_name": r["item_name"],
            "category_name": r["category_name"],
            "uom": r["uom"],
            "opening_qty": r["opening_qty"],
            "current_qty": r["current_qty"],
            "difference": r["current_qty"] - r["opening_qty"],
        }
        for r in filtered
    ]
    return {
        "items": items,
        "totals": {
            "total_items": len(items),
            "total_opening_qty": sum(r["opening_qty"] for r in items),
            "total_current_qty": sum(r["current_qty"] for r in items),
            "zero_opening": sum(1 for r in items if r["opening_qty"] == 0),
        },
    }


def rows_to_csv(rows: List[dict], columns: List[str]) -> str:
    buf = io.StringIO()
    pd.DataFrame(rows, columns=columns).to_csv(buf, index=False)
    return buf.getvalue()
