"""Tests for inventrack/services/csv_import_service.py."""
from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from inventrack.services import csv_import_service as csv_import
from inventrack.services import items_service
from inventrack.services.categories_service import CSV_IMPORT_DESCRIPTION, list_categories
from inventrack.services.inventory_service import InventoryService

ITEM_MASTER = (
    "item_name,category_name,uom,qualifier,gsm,size_mm\n"
    "Premium Art Paper,Paper,KG,PREMIUM,80,1000x700\n"
    "Corrugated Box,Packaging,PCS,3PLY,,300x200x150\n"
)


@pytest.fixture
def items(db, tables):
    for code in ("RAW001", "RAW002"):
        items_service.create_item(db, tables, {"item_code": code, "item_name": code.title(), "uom": "KG"})


class TestParseCsv:
    def test_headers_and_lowercased_keys(self):
        headers, rows = csv_import.parse_csv(b"Item_Code, Qty\nA1, 5\n")
        assert headers == ["Item_Code", "Qty"]
        assert rows == [{"item_code": "A1", "qty": "5"}]

    def test_quoted_commas_and_bom(self):
        content = '\ufeffitem_name,remarks\n"Box, large","a ""quoted"" note"\n'.encode("utf-8")
        _, rows = csv_import.parse_csv(content)
        assert rows == [{"item_name": "Box, large", "remarks": 'a "quoted" note'}]

    def test_blank_lines_skipped(self):
        _, rows = csv_import.parse_csv(b"a,b\n1,2\n\n3,4\n")
        assert len(rows) == 2

    def test_empty_file(self):
        with pytest.raises(csv_import.CSVFormatError, match="CSV file is empty"):
            csv_import.parse_csv(b"  \n")

    def test_missing_headers(self):
        assert csv_import.missing_headers(["ITEM_NAME", "uom"], csv_import.ITEM_MASTER_REQUIRED) == ["category_name"]
        with pytest.raises(csv_import.CSVFormatError, match="Missing required headers: category_name"):
            csv_import.require_headers(["item_name", "uom"], csv_import.ITEM_MASTER_REQUIRED)

    @pytest.mark.parametrize("value", ["2024-01-15", "15-01-2024", "15/01/2024", "2024/01/15", "15.01.2024"])
    def test_date_formats(self, value):
        assert csv_import.parse_date(value) == date(2024, 1, 15)

    def test_bad_date(self):
        assert csv_import.parse_date("Jan fifteenth") is None

    def test_templates(self):
        assert csv_import.render_template("grn").splitlines()[0] == (
            "grn_number,date,item_code,qty_received,uom,invoice_number,amount_inr,vendor,remarks"
        )
        with pytest.raises(KeyError):
            csv_import.render_template("nope")


class TestItemMaster:
    def test_preview_reports_existing_and_in_file_duplicates(self, db, tables):
        items_service.create_item(db, tables, {"item_code": "PAP_PREMIUM_1000X700_80", "item_name": "x", "uom": "KG"})
        content = (ITEM_MASTER + "Premium Art Paper again,Paper,KG,PREMIUM,80,1000x700\n").encode()
        preview = csv_import.preview_item_master(db, tables, content)
        assert preview["total"] == 3
        assert preview["errors"] == []
        assert [(c["row"], c["type"]) for c in preview["conflicts"]] == [
            (2, csv_import.CONFLICT_EXISTING_CODE),
            (4, csv_import.CONFLICT_DUPLICATE_IN_FILE),
        ]

    def test_row_errors_use_spreadsheet_row_numbers(self, db, tables):
        content = b"item_name,category_name,uom,gsm\nGood,Paper,KG,80\n,Paper,KG,abc\n"
        preview = csv_import.preview_item_master(db, tables, content)
        assert {(e["row"], e["message"]) for e in preview["errors"]} == {
            (3, "Item name is required"),
            (3, "GSM must be a number"),
        }
        with pytest.raises(csv_import.CSVValidationError):
            csv_import.import_item_master(db, tables, content, "items.csv")

    def test_import_creates_items_categories_and_log(self, db, tables):
        result = csv_import.import_item_master(db, tables, ITEM_MASTER.encode(), "items.csv")
        assert result["inserted"] == 2
        assert result["success"] == 2
        assert sorted(result["created_categories"]) == ["Packaging", "Paper"]
        assert items_service.get_item(db, tables, "PAC_3PLY_300X200X150")["category_name"] == "Packaging"
        assert {c["category_name"] for c in list_categories(db, tables)} == {"Packaging", "Paper"}

        logs = csv_import.list_upload_logs(db, tables)
        assert len(logs) == 1
        assert logs[0]["file_type"] == "item_master"
        assert (logs[0]["total_rows"], logs[0]["success_rows"], logs[0]["error_rows"]) == (2, 2, 0)

    def test_existing_codes_skipped_unless_resolved_to_update(self, db, tables):
        csv_import.import_item_master(db, tables, ITEM_MASTER.encode(), "items.csv")
        renamed = ITEM_MASTER.replace("Premium Art Paper", "Art Paper v2").replace("Corrugated Box", "Box v2")

        result = csv_import.import_item_master(db, tables, renamed.encode(), "items.csv", resolutions={2: "update"})
        assert (result["inserted"], result["updated"], result["skipped"]) == (0, 1, 1)
        assert items_service.get_item(db, tables, "PAP_PREMIUM_1000X700_80")["item_name"] == "Art Paper v2"
        assert items_service.get_item(db, tables, "PAC_3PLY_300X200X150")["item_name"] == "Corrugated Box"

    def test_ungeneratable_code_is_an_error_conflict(self, db, tables):
        content = b"item_name,category_name,uom\nOdd Thing,!!!,PCS\nBox,Packaging,PCS\n"
        conflicts = csv_import.preview_item_master(db, tables, content)["conflicts"]
        assert [(c["row"], c["type"], c["action"], c["item_code"]) for c in conflicts] == [
            (2, csv_import.CONFLICT_VALIDATION_ERROR, csv_import.ACTION_ERROR, None),
        ]
        assert conflicts[0]["message"] == "Category name must contain letters or digits"

        result = csv_import.import_item_master(db, tables, content, "items.csv")
        assert result["inserted"] == 1
        assert [(e["row"], e["message"]) for e in result["errors"]] == [
            (2, "Category name must contain letters or digits"),
        ]


class TestGRNImport:
    def test_import(self, db, tables, items):
        content = (
            b"grn_number,date,item_code,qty_received,uom,vendor\n"
            b"GRN001,2024-01-15,RAW001,\"1,000\",KG,Acme\n"
            b"GRN001,15/01/2024,RAW002,50,KG,\n"
        )
        result = csv_import.import_grn(db, tables, content, "grn.csv")
        assert result == {"success": 2, "errors": [], "total": 2}
        assert InventoryService.get_current_stock(db, tables, "RAW001") == 1000
        assert InventoryService.get_current_stock(db, tables, "RAW002") == 50

    def test_field_errors(self, db, tables, items):
        content = b"grn_number,date,item_code,qty_received,uom\n,not-a-date,RAW001,-4,KG\n"
        errors = csv_import.preview_grn(db, tables, content)["errors"]
        assert {e["message"] for e in errors} == {
            "GRN number is required",
            "Invalid date format",
            "Quantity must be a positive number",
        }
        assert {e["row"] for e in errors} == {2}

    @pytest.mark.parametrize("qty", ["nan", "inf", "-inf", "NaN"])
    def test_non_finite_quantity_rejected(self, db, tables, items, qty):
        content = f"grn_number,date,item_code,qty_received,uom\nG1,2024-01-15,RAW001,{qty},KG\n".encode()
        errors = csv_import.preview_grn(db, tables, content)["errors"]
        assert errors == [{"row": 2, "message": "Quantity must be a positive number", "field": "qty_received"}]
        with pytest.raises(csv_import.CSVValidationError):
            csv_import.import_grn(db, tables, content, "g.csv")
        assert InventoryService.list_grns(db, tables) == []

    def test_database_errors_hide_statement(self, db, tables, items, monkeypatch):
        def failing_create_grn(db, tables, data, commit=True):
            raise IntegrityError(
                "INSERT INTO satguru_grn_log (qty_received) VALUES (?)", (None,),
                Exception("NOT NULL constraint failed: satguru_grn_log.qty_received"),
            )

        monkeypatch.setattr(InventoryService, "create_grn", staticmethod(failing_create_grn))
        content = b"grn_number,date,item_code,qty_received,uom\nG1,2024-01-15,RAW001,5,KG\n"
        result = csv_import.import_grn(db, tables, content, "g.csv")
        assert result["success"] == 0
        assert result["errors"][0]["message"] == (
            "Database error: NOT NULL constraint failed: satguru_grn_log.qty_received"
        )
        assert "INSERT" not in result["errors"][0]["message"]

    def test_unknown_item(self, db, tables, items):
        content = b"grn_number,date,item_code,qty_received,uom\nG1,2024-01-15,NOPE,5,KG\n"
        errors = csv_import.preview_grn(db, tables, content)["errors"]
        assert errors[0]["message"] == "Item code 'NOPE' does not exist in item master"

    def test_duplicates_in_file_and_database(self, db, tables, items):
        csv_import.import_grn(db, tables, b"grn_number,date,item_code,qty_received,uom\nG1,2024-01-15,RAW001,5,KG\n", "a.csv")
        content = (
            b"grn_number,date,item_code,qty_received,uom\n"
            b"G1,2024-01-16,RAW001,5,KG\n"
            b"G2,2024-01-16,RAW002,5,KG\n"
            b"G2,2024-01-16,RAW002,5,KG\n"
        )
        with pytest.raises(csv_import.CSVValidationError) as exc:
            csv_import.import_grn(db, tables, content, "b.csv")
        messages = [(e["row"], e["message"]) for e in exc.value.errors]
        assert messages == [
            (2, "GRN number 'G1' with item code 'RAW001' already exists in database"),
            (4, "Duplicate GRN number 'G2' with item code 'RAW002' found in CSV"),
        ]
        assert InventoryService.get_current_stock(db, tables, "RAW001") == 5

    def test_missing_headers(self, db, tables):
        with pytest.raises(csv_import.CSVFormatError, match="Missing required headers: qty_received, uom"):
            csv_import.import_grn(db, tables, b"grn_number,date,item_code\nG1,2024-01-15,RAW001\n", "g.csv")


class TestIssueImport:
    def test_stock_checked_cumulatively(self, db, tables, items):
        InventoryService.manual_opening_entry(db, tables, "RAW001", 10)
        content = (
            b"date,item_code,qty_issued,purpose\n"
            b"2024-01-16,RAW001,6,Production\n"
            b"2024-01-16,RAW001,6,Production\n"
        )
        errors = csv_import.preview_issues(db, tables, content)["errors"]
        assert errors == [{"row": 3, "message": "Insufficient stock. Available: 4, Requested: 6", "field": "qty_issued"}]

    @pytest.mark.parametrize("qty", ["nan", "inf"])
    def test_non_finite_quantity_rejected(self, db, tables, items, qty):
        InventoryService.manual_opening_entry(db, tables, "RAW001", 10)
        content = f"date,item_code,qty_issued,purpose\n2024-01-16,RAW001,{qty},Production\n".encode()
        errors = csv_import.preview_issues(db, tables, content)["errors"]
        assert errors == [{"row": 2, "message": "Quantity must be a positive number", "field": "qty_issued"}]
        with pytest.raises(csv_import.CSVValidationError):
            csv_import.import_issues(db, tables, content, "issues.csv")
        assert InventoryService.get_current_stock(db, tables, "RAW001") == 10

    def test_import(self, db, tables, items):
        InventoryService.manual_opening_entry(db, tables, "RAW001", 10)
        content = b"date,item_code,qty_issued,purpose,remarks\n2024-01-16,RAW001,4,Production,\n"
        result = csv_import.import_issues(db, tables, content, "issues.csv")
        assert result["success"] == 1
        assert InventoryService.get_current_stock(db, tables, "RAW001") == 6
        issues = InventoryService.list_issues(db, tables)
        assert issues[0]["purpose"] == "Production"
        assert issues[0]["remarks"] is None


class TestOpeningStockImport:
    CONTENT = (
        b"Item Code,Item Name,Category,Opening Qty,UOM\n"
        b"RAW001,Resin,Raw Materials,100,KG\n"
        b",Missing,Raw Materials,5,KG\n"
        b"NEW001,New Thing,,7.5,\n"
    )

    def test_dry_run_writes_nothing(self, db, tables):
        result = csv_import.import_opening_stock(db, tables, self.CONTENT, "open.csv", dry_run=True)
        assert result["total"] == 3
        assert result["errors"] == [{"row": 2, "message": "Item code is required"}]
        assert db.execute(select(tables.item_master)).first() is None

    def test_import_upserts_items_and_stock(self, db, tables, items):
        result = csv_import.import_opening_stock(db, tables, self.CONTENT, "open.csv")
        assert result["success"] == 2
        assert len(result["errors"]) == 1

        resin = items_service.get_item(db, tables, "RAW001")
        assert (resin["item_name"], resin["category_name"], resin["opening_qty"], resin["current_qty"]) == (
            "Resin", "Raw Materials", 100, 100,
        )
        new = items_service.get_item(db, tables, "NEW001")
        assert (new["uom"], new["current_qty"]) == ("PCS", 7.5)
        assert [c["description"] for c in list_categories(db, tables)] == [CSV_IMPORT_DESCRIPTION]

    def test_unmatched_columns_are_warnings(self, db, tables):
        result = csv_import.import_opening_stock(db, tables, b"item_code,opening_qty\nRAW009,3\n", "o.csv")
        assert result["success"] == 1
        assert "Column 'item_name' not found" in result["warnings"]

    def test_item_code_column_required(self, db, tables):
        with pytest.raises(csv_import.CSVFormatError):
            csv_import.import_opening_stock(db, tables, b"name,qty\nx,1\n", "o.csv")
