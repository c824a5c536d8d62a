"""Tests for snapshots, historical export and the OpenAI-backed analysis."""
import json
from datetime import date

import pytest
import requests
from sqlalchemy import select

from inventrack.config import settings
from inventrack.services import ai_insights_service as ai
from inventrack.services import items_service
from inventrack.services import snapshot_service
from inventrack.services.inventory_service import InventoryService


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body or {}
        self.text = json.dumps(self._body)

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self._body


@pytest.fixture
def stock(db, tables):
    items_service.create_item(db, tables, {"item_code": "RAW001", "item_name": "Resin", "uom": "KG"})
    InventoryService.manual_opening_entry(db, tables, "RAW001", 12)


@pytest.fixture
def openai_key(monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-test")


class TestSnapshots:
    def test_capture_and_replace(self, db, tables, stock):
        first = snapshot_service.capture_daily_snapshot(db, tables, date(2024, 3, 1))
        assert first == {"snapshot_date": "2024-03-01", "record_count": 1, "replaced": False}
        assert snapshot_service.capture_daily_snapshot(db, tables, date(2024, 3, 1))["replaced"] is True

        snapshots = snapshot_service.list_snapshots(db, tables)
        assert len(snapshots) == 1
        assert snapshots[0]["metadata"]["total_current_qty"] == 12

    def test_newest_first(self, db, tables, stock):
        for day in (1, 3, 2):
            snapshot_service.capture_daily_snapshot(db, tables, date(2024, 3, day))
        dates = [s["snapshot_date"] for s in snapshot_service.list_snapshots(db, tables, limit=2)]
        assert dates == [date(2024, 3, 3), date(2024, 3, 2)]


class TestExport:
    def test_json(self, db, tables, stock):
        snapshot_service.capture_daily_snapshot(db, tables, date(2024, 3, 1))
        content, media_type, filename = snapshot_service.export_history(db, tables, "json")
        assert media_type == "application/json"
        assert filename == f"stock_history_{date.today().isoformat()}.json"
        data = json.loads(content)
        assert data[0]["snapshot_data"][0]["item_code"] == "RAW001"

    def test_csv_flattens_rows(self, db, tables, stock):
        snapshot_service.capture_daily_snapshot(db, tables, date(2024, 3, 1))
        snapshot_service.capture_daily_snapshot(db, tables, date(2024, 3, 2))
        content, media_type, _ = snapshot_service.export_history(db, tables, "csv", start=date(2024, 3, 2))
        lines = content.strip().splitlines()
        assert media_type == "text/csv"
        assert lines[0].split(",")[:2] == ["snapshot_date", "item_code"]
        assert len(lines) == 2
        assert lines[1].startswith("2024-03-02,RAW001")

    def test_csv_keeps_snapshots_without_items(self, db, tables):
        snapshot_service.capture_daily_snapshot(db, tables, date(2024, 1, 1))
        content, _, _ = snapshot_service.export_history(db, tables, "csv")
        lines = content.strip().splitlines()
        assert lines[0] == "snapshot_date,record_count,created_at"
        assert lines[1].startswith("2024-01-01,0,")

    def test_csv_mixes_empty_and_stocked_snapshots(self, db, tables):
        snapshot_service.capture_daily_snapshot(db, tables, date(2024, 1, 1))
        items_service.create_item(db, tables, {"item_code": "RAW001", "item_name": "Resin", "uom": "KG"})
        snapshot_service.capture_daily_snapshot(db, tables, date(2024, 1, 2))
        content, _, _ = snapshot_service.export_history(db, tables, "csv")
        lines = content.strip().splitlines()
        assert len(lines) == 3
        assert lines[1].startswith("2024-01-02,RAW001")
        assert lines[2].startswith("2024-01-01,")

    def test_no_data(self, db, tables):
        with pytest.raises(snapshot_service.NoHistoricalDataError, match="No data found"):
            snapshot_service.export_history(db, tables, "csv")

    def test_unsupported_format(self, db, tables):
        with pytest.raises(snapshot_service.UnsupportedExportFormatError):
            snapshot_service.export_history(db, tables, "xml")


class TestAnalyze:
    def test_requires_key(self, db, tables, monkeypatch):
        monkeypatch.setattr(settings, "OPENAI_API_KEY", "")
        with pytest.raises(ai.AIConfigurationError, match="OpenAI API key not configured"):
            ai.analyze_stock_patterns(db, tables, "What is running low?")

    def test_saves_query_and_returns_insight(self, db, tables, stock, openai_key, monkeypatch):
        calls = []

        def fake_post(url, headers=None, json=None, timeout=None):
            calls.append({"url": url, "headers": headers, "json": json})
            return FakeResponse(body={"choices": [{"message": {"content": "Resin is fine."}}]})

        monkeypatch.setattr(requests, "post", fake_post)
        snapshot_service.capture_daily_snapshot(db, tables, date(2024, 3, 1))

        result = ai.analyze_stock_patterns(db, tables, "What is running low?", filters={"category": "all"})
        assert result["success"] is True
        assert result["insight"] == "Resin is fine."
        assert result["metadata"]["historical_records"] == 1
        assert result["metadata"]["current_stock_items"] == 1

        assert calls[0]["url"].endswith("/chat/completions")
        assert calls[0]["headers"]["Authorization"] == "Bearer sk-test"
        assert calls[0]["json"]["model"] == settings.OPENAI_MODEL
        assert "What is running low?" in calls[0]["json"]["messages"][1]["content"]

        saved = db.execute(select(tables.stock_analytics_queries)).mappings().one()
        assert saved["query_type"] == "ai_analysis"
        assert saved["query_result"]["insight"] == "Resin is fine."
        assert str(saved["id"]) == result["metadata"]["query_id"]

    def test_upstream_error(self, db, tables, openai_key, monkeypatch):
        monkeypatch.setattr(requests, "post", lambda *a, **kw: FakeResponse(401, {"error": {"message": "bad key"}}))
        with pytest.raises(ai.AIAnalysisError) as exc:
            ai.analyze_stock_patterns(db, tables, "anything")
        assert str(exc.value) == "AI analysis failed"
        assert exc.value.details


class TestApiStatus:
    def test_status(self, monkeypatch):
        monkeypatch.setattr(settings, "OPENAI_API_KEY", "")
        monkeypatch.setattr(settings, "SMTP_HOST", "smtp.example.com")
        status = ai.api_status()
        assert status["openai"]["configured"] is False
        assert status["email"]["configured"] is True

    def test_unknown_service(self):
        assert ai.check_api_connection("slack")["message"] == "Unknown service"

    def test_connection_ok(self, openai_key, monkeypatch):
        monkeypatch.setattr(requests, "get", lambda *a, **kw: FakeResponse(200, {"data": []}))
        assert ai.check_api_connection("openai") == {
            "success": True, "message": "OpenAI API connection successful", "configured": True,
        }

    def test_connection_network_error(self, openai_key, monkeypatch):
        def boom(*a, **kw):
            raise requests.ConnectionError("down")

        monkeypatch.setattr(requests, "get", boom)
        result = ai.check_api_connection("openai")
        assert result["success"] is False
        assert result["configured"] is True
