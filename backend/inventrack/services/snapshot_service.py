"""
Daily stock snapshots and historical export.

A snapshot is the full stock summary for one day, stored as JSON so the
history survives later edits to items and movements.
"""
import io
import json
import logging
import uuid
from datetime import date
from typing import List, Optional, Tuple

import pandas as pd
from sqlalchemy import select
from sqlalchemy.orm import Session

from inventrack.models import TenantTables
from inventrack.services.stock_summary_service import compute_stock_summary
from inventrack.utils.quantities import json_safe

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("json", "csv")
DEFAULT_LIST_LIMIT = 30


class NoHistoricalDataError(LookupError):
    pass


class UnsupportedExportFormatError(ValueError):
    pass


def capture_daily_snapshot(db: Session, tables: TenantTables, snapshot_date: Optional[date] = None,
                           source: str = "manual") -> dict:
    """Store today's stock summary. Re-capturing the same day replaces it."""
    snapshot_date = snapshot_date or date.today()
    rows = json_safe(compute_stock_summary(db, tables, as_of=snapshot_date))
    meta = {"source": source, "total_current_qty": sum(r["current_qty"] for r in rows)}
    t = tables.daily_stock_snapshots
    existing = db.execute(select(t.c.id).where(t.c.snapshot_date == snapshot_date)).scalar_one_or_none()
    values = {"snapshot_data": rows, "record_count": len(rows), "metadata": meta}
    if existing:
        db.execute(t.update().where(t.c.id == existing).values(**values))
    else:
        db.execute(t.insert().values(id=uuid.uuid4(), snapshot_date=snapshot_date, **values))
    db.commit()
    logger.info("Captured stock snapshot for %s (%s items, prefix=%r)", snapshot_date, len(rows), tables.prefix)
    return {"snapshot_date": snapshot_date.isoformat(), "record_count": len(rows), "replaced": bool(existing)}


def load_snapshots(
    db: Session,
    tables: TenantTables,
    start: Optional[date] = None,
    end: Optional[date] = None,
    limit: Optional[int] = None,
) -> List[dict]:
    """Snapshots newest first, optionally within [start, end]."""
    t = tables.daily_stock_snapshots
    q = select(t).order_by(t.c.snapshot_date.desc())
    if start:
        q = q.where(t.c.snapshot_date >= start)
    if end:
        q = q.where(t.c.snapshot_date <= end)
    if limit:
        q = q.limit(limit)
    return [dict(r) for r in db.execute(q).mappings().all()]


def list_snapshots(db: Session, tables: TenantTables, limit: int = DEFAULT_LIST_LIMIT) -> List[dict]:
    """Snapshot headers (without the item rows)."""
    return [
        {
            "id": s["id"],
            "snapshot_date": s["snapshot_date"],
            "record_count": s["record_count"],
            "metadata": s["metadata"],
            "created_at": s["created_at"],
        }
        for s in load_snapshots(db, tables, limit=limit)
    ]


def _flatten(snapshots: List[dict]) -> List[dict]:
    """One CSV row per snapshot item; a snapshot with no items still gets a row."""
    rows = []
    for s in snapshots:
        base = {
            "snapshot_date": s["snapshot_date"].isoformat(),
            "record_count": s["record_count"],
            "created_at": s["created_at"].isoformat() if s["created_at"] else None,
        }
        items = s["snapshot_data"] or []
        if not items:
            rows.append(base)
        for item in items:
            rows.append({"snapshot_date": base["snapshot_date"], **item, "record_count": base["record_count"],
                         "created_at": base["created_at"]})
    return rows


def export_history(
    db: Session,
    tables: TenantTables,
    fmt: str = "json",
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> Tuple[str, str, str]:
    """
    Export snapshots in range. Returns (content, media_type, filename).
    Raises NoHistoricalDataError when nothing matches.
    """
    fmt = (fmt or "json").lower()
    if fmt not in EXPORT_FORMATS:
        raise UnsupportedExportFormatError("Unsupported format. Use json or csv.")
    snapshots = load_snapshots(db, tables, start=start, end=end)
    if not snapshots:
        raise NoHistoricalDataError("No data found for the specified criteria")

    filename = f"stock_history_{date.today().isoformat()}.{fmt}"
    if fmt == "json":
        return json.dumps(json_safe(snapshots), indent=2), "application/json", filename

    buf = io.StringIO()
    pd.DataFrame(_flatten(snapshots)).to_csv(buf, index=False)
    return buf.getvalue(), "text/csv", filename
