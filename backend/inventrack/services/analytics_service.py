"""
Dashboard, stock alerts and analytics built on the stock summary.
"""
import logging
from collections import OrderedDict, defaultdict
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventrack.models import TenantTables
from inventrack.services.stock_summary_service import (
    HIGH_STOCK_THRESHOLD,
    LOW_STOCK_THRESHOLD,
    NO_USAGE_DAYS_OF_COVER,
    compute_stock_summary,
)
from inventrack.utils.quantities import to_float

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"
RECENT_LIMIT = 5
MOVEMENT_ROWS = 30
TOP_MOVEMENT_ITEMS = 10
CRITICAL_COVER_DAYS = 10

ALERT_TYPES = ("critical", "low", "medium", "out_of_stock")
ALERT_SEVERITY = {"out_of_stock": 0, "critical": 1, "low": 2, "medium": 3}


def alert_level(qty: float, days_of_cover: float) -> str:
    """
    out_of_stock: qty == 0
    critical:     0 < qty < 5   and cover < 7 days
    low:          5 <= qty < 10 and cover < 14 days
    medium:       10 <= qty < 50 and cover < 30 days
    """
    if qty == 0:
        return "out_of_stock"
    if 0 < qty < 5 and days_of_cover < 7:
        return "critical"
    if 5 <= qty < 10 and days_of_cover < 14:
        return "low"
    if 10 <= qty < 50 and days_of_cover < 30:
        return "medium"
    return "normal"


def build_alerts(
    rows: List[dict],
    search: Optional[str] = None,
    category: Optional[str] = None,
    alert_type: Optional[str] = None,
) -> dict:
    annotated = []
    counts = {t: 0 for t in ALERT_TYPES}
    for r in rows:
        level = alert_level(r["current_qty"], r["days_of_cover"])
        if level in counts:
            counts[level] += 1
        annotated.append({**r, "alert_level": level})

    alerts = [r for r in annotated if r["alert_level"] != "normal"]
    if search and search.strip():
        term = search.strip().lower()
        alerts = [
            r for r in alerts
            if term in (r["item_name"] or "").lower() or term in (r["item_code"] or "").lower()
        ]
    if category and category != "all":
        alerts = [r for r in alerts if (r.get("category_name") or "") == category]
    if alert_type and alert_type != "all":
        if alert_type not in ALERT_TYPES:
            raise ValueError(f"Unknown alert type '{alert_type}'")
        alerts = [r for r in alerts if r["alert_level"] == alert_type]
    alerts.sort(key=lambda r: (ALERT_SEVERITY[r["alert_level"]], r["current_qty"]))
    return {"counts": counts, "alerts": alerts}


def _recent_movements(db: Session, tables: TenantTables):
    g, iss, i = tables.grn_log, tables.issue_log, tables.item_master
    recent_grns = db.execute(
        select(g.c.grn_number, g.c.date, g.c.item_code, g.c.qty_received, g.c.vendor, i.c.item_name)
        .select_from(g.outerjoin(i, i.c.item_code == g.c.item_code))
        .order_by(g.c.date.desc(), g.c.created_at.desc())
        .limit(RECENT_LIMIT)
    ).mappings().all()
    recent_issues = db.execute(
        select(iss.c.date, iss.c.item_code, iss.c.qty_issued, iss.c.purpose, i.c.item_name)
        .select_from(iss.outerjoin(i, i.c.item_code == iss.c.item_code))
        .order_by(iss.c.date.desc(), iss.c.created_at.desc())
        .limit(RECENT_LIMIT)
    ).mappings().all()
    return [dict(r) for r in recent_grns], [dict(r) for r in recent_issues]


def _daily_movements(db: Session, tables: TenantTables) -> List[dict]:
    """First MOVEMENT_ROWS GRN and issue rows by date, summed per date."""
    g, iss = tables.grn_log, tables.issue_log
    grn_rows = db.execute(
        select(g.c.date, g.c.qty_received).order_by(g.c.date).limit(MOVEMENT_ROWS)
    ).all()
    issue_rows = db.execute(
        select(iss.c.date, iss.c.qty_issued).order_by(iss.c.date).limit(MOVEMENT_ROWS)
    ).all()
    by_date = defaultdict(lambda: {"grn": 0.0, "issue": 0.0})
    for d, qty in grn_rows:
        by_date[d]["grn"] += to_float(qty)
    for d, qty in issue_rows:
        by_date[d]["issue"] += to_float(qty)
    return [
        {"date": d.isoformat(), "grn": v["grn"], "issue": v["issue"]}
        for d, v in sorted(by_date.items())
    ]


def dashboard(db: Session, tables: TenantTables) -> dict:
    rows = compute_stock_summary(db, tables)
    categories = OrderedDict()
    distribution = {"high": 0, "medium": 0, "low": 0, "zero": 0}
    for r in rows:
        name = r.get("category_name") or UNCATEGORIZED
        bucket = categories.setdefault(name, {"category_name": name, "value": 0.0, "items": 0})
        bucket["value"] += r["current_qty"]
        bucket["items"] += 1
        qty = r["current_qty"]
        # zero-stock items are also counted as low
        if qty == 0:
            distribution["zero"] += 1
        if qty < LOW_STOCK_THRESHOLD:
            distribution["low"] += 1
        elif qty < HIGH_STOCK_THRESHOLD:
            distribution["medium"] += 1
        else:
            distribution["high"] += 1

    recent_grns, recent_issues = _recent_movements(db, tables)
    return {
        "total_items": len(rows),
        "low_stock_items": sum(1 for r in rows if r["current_qty"] < LOW_STOCK_THRESHOLD),
        "total_quantity": sum(r["current_qty"] for r in rows),
        "category_breakdown": list(categories.values()),
        "stock_distribution": distribution,
        "recent_grns": recent_grns,
        "recent_issues": recent_issues,
        "movements": _daily_movements(db, tables),
    }


def analytics(db: Session, tables: TenantTables) -> dict:
    rows = compute_stock_summary(db, tables)
    mismatches = [r for r in rows if r["stock_validation_status"] == "MISMATCH"]

    movement = []
    for r in rows:
        movement.append({
            "item_code": r["item_code"],
            "item_name": r["item_name"],
            "issue_30d": r["issue_30d"],
            "current_qty": r["current_qty"],
            "turnover": round(r["issue_30d"] / (r["current_qty"] or 1) * 100, 2),
        })
    movement.sort(key=lambda m: m["issue_30d"], reverse=True)

    categories = OrderedDict()
    for r in rows:
        name = r.get("category_name") or UNCATEGORIZED
        bucket = categories.setdefault(name, {"category_name": name, "count": 0, "quantity": 0.0})
        bucket["count"] += 1
        bucket["quantity"] += r["current_qty"]

    return {
        "totals": {
            "total_items": len(rows),
            "low_stock_items": sum(1 for r in rows if 0 < r["current_qty"] < LOW_STOCK_THRESHOLD),
            "out_of_stock_items": sum(1 for r in rows if r["current_qty"] == 0),
            "critical_stock_items": sum(
                1 for r in rows
                if r["days_of_cover"] < CRITICAL_COVER_DAYS and r["days_of_cover"] != NO_USAGE_DAYS_OF_COVER
            ),
            "total_current_qty": sum(r["current_qty"] for r in rows),
            "total_grn_qty": sum(r["total_grn_qty"] for r in rows),
            "total_issued_qty": sum(r["total_issued_qty"] for r in rows),
        },
        "validation_issues": len(mismatches),
        "mismatches": mismatches,
        "top_movement": movement[:TOP_MOVEMENT_ITEMS],
        "categories": list(categories.values()),
    }
