"""
Snapshot, export and AI analysis schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import date


class DateRange(BaseModel):
    start: Optional[date] = None
    end: Optional[date] = None


class AnalyzeRequest(BaseModel):
    query: str = Field(..., min_length=1)
    date_range: Optional[DateRange] = None
    filters: Optional[Dict[str, Any]] = None


class ConnectionTestRequest(BaseModel):
    service: str


class SnapshotCaptureRequest(BaseModel):
    snapshot_date: Optional[date] = None
