"""End-to-end tests through the FastAPI app."""
from datetime import date

from conftest import PASSWORD, csv_file, register


def _create_item(client, headers, code="RAW001", **extra):
    body = {"item_code": code, "item_name": f"Item {code}", "uom": "KG", **extra}
    resp = client.post("/api/items", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _receive(client, headers, code="RAW001", qty=100, number="GRN001"):
    resp = client.post("/api/grn", json={
        "grn_number": number, "date": date.today().isoformat(), "item_code": code, "qty_received": qty, "uom": "KG",
    }, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestAuth:
    def test_register_login_me(self, client, organization):
        register(client, "someone@satguru.com", full_name="Some One")
        resp = client.post("/api/auth/login", json={"email": "SomeOne@satguru.com", "password": PASSWORD})
        assert resp.status_code == 200
        headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}

        me = client.get("/api/auth/me", headers=headers).json()
        assert me["profile"]["email"] == "someone@satguru.com"
        assert me["profile"]["employee_id"].startswith("TEMP_")
        assert me["profile"]["is_admin"] is True
        assert me["organization"]["code"] == "SATGURU"
        assert me["organization"]["table_prefix"] == "satguru"

    def test_unknown_domain_refused(self, client, organization):
        resp = client.post("/api/auth/register", json={"email": "x@gmail.com", "password": PASSWORD})
        assert resp.status_code == 403

    def test_duplicate_email(self, client, auth_headers):
        resp = client.post("/api/auth/register", json={"email": "admin@satguru.com", "password": PASSWORD})
        assert resp.status_code == 409

    def test_weak_password(self, client, organization):
        resp = client.post("/api/auth/register", json={"email": "a@satguru.com", "password": "short"})
        assert resp.status_code == 400

    def test_bad_login(self, client, auth_headers):
        resp = client.post("/api/auth/login", json={"email": "admin@satguru.com", "password": "Wrong1234"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid email or password"

    def test_refresh(self, client, organization):
        resp = client.post("/api/auth/register", json={"email": "r@satguru.com", "password": PASSWORD})
        refresh_token = resp.json()["refresh_token"]
        resp = client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
        assert resp.status_code == 200
        access = resp.json()["access_token"]
        assert client.post("/api/auth/refresh", json={"refresh_token": access}).status_code == 401

    def test_routes_require_token(self, client):
        assert client.get("/api/items").status_code == 401
        resp = client.get("/api/items", headers={"Authorization": "Bearer nonsense"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid token"


class TestOrganizations:
    def test_create_and_switch(self, client, auth_headers):
        resp = client.post("/api/organizations", json={
            "name": "Acme Labels", "code": "acme", "table_prefix": "acme", "email_domain": "acme.com",
        }, headers=auth_headers)
        assert resp.status_code == 201, resp.text
        org = resp.json()
        assert org["code"] == "ACME"

        assert client.post("/api/organizations", json={
            "name": "Again", "code": "ACME",
        }, headers=auth_headers).status_code == 409
        assert {o["code"] for o in client.get("/api/organizations", headers=auth_headers).json()} == {"ACME", "SATGURU"}

        _create_item(client, auth_headers)
        resp = client.post("/api/organizations/switch", json={"organization_id": org["id"]}, headers=auth_headers)
        assert resp.status_code == 200
        assert client.get("/api/items", headers=auth_headers).json() == []

    def test_invalid_prefix(self, client, auth_headers):
        resp = client.post("/api/organizations", json={
            "name": "Bad", "code": "BAD", "table_prefix": "1; drop",
        }, headers=auth_headers)
        assert resp.status_code == 400

    def test_roles_and_approval(self, client, auth_headers, monkeypatch):
        from inventrack.config import settings

        monkeypatch.setattr(settings, "AUTO_PROVISION_ROLE", "user")
        user_headers = register(client, "user@satguru.com")
        assert client.get("/api/organizations/users", headers=user_headers).status_code == 403
        assert client.get("/api/items", headers=user_headers).status_code == 200

        users = {u["email"]: u for u in client.get("/api/organizations/users", headers=auth_headers).json()}
        user_id, admin_id = users["user@satguru.com"]["id"], users["admin@satguru.com"]["id"]

        resp = client.put(f"/api/organizations/users/{user_id}/approval", json={"is_approved": False}, headers=auth_headers)
        assert resp.json()["is_approved"] is False
        resp = client.get("/api/items", headers=user_headers)
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Your account is pending approval."

        resp = client.put(f"/api/organizations/users/{admin_id}/role", json={"role": "user"}, headers=auth_headers)
        assert resp.status_code == 400
        resp = client.put(f"/api/organizations/users/{user_id}/role", json={"role": "owner"}, headers=auth_headers)
        assert resp.status_code == 400
        resp = client.put(f"/api/organizations/users/{user_id}/role", json={"role": "admin"}, headers=auth_headers)
        assert resp.json()["role_names"] == ["admin"]


class TestCategoriesAndItems:
    def test_category_crud(self, client, auth_headers):
        resp = client.post("/api/categories", json={"category_name": " Paper "}, headers=auth_headers)
        assert resp.status_code == 201
        category = resp.json()
        assert category["category_name"] == "Paper"
        assert client.post("/api/categories", json={"category_name": "paper"}, headers=auth_headers).status_code == 409

        _create_item(client, auth_headers, category_id=category["id"])
        listed = client.get("/api/categories", headers=auth_headers).json()
        assert listed[0]["item_count"] == 1
        resp = client.delete(f"/api/categories/{category['id']}", headers=auth_headers)
        assert resp.status_code == 409

        resp = client.put(f"/api/categories/{category['id']}", json={"category_name": "Papers"}, headers=auth_headers)
        assert resp.json()["category_name"] == "Papers"

    def test_generated_item_code(self, client, auth_headers):
        category = client.post("/api/categories", json={"category_name": "Raw Materials"}, headers=auth_headers).json()
        resp = client.post("/api/items", json={
            "item_name": "Premium film", "category_id": category["id"], "qualifier": "premium",
            "size_mm": "100x200", "gsm": 80, "uom": "KG",
        }, headers=auth_headers)
        assert resp.status_code == 201, resp.text
        assert resp.json()["item_code"] == "RM_PREMIUM_100X200_80"
        assert resp.json()["category_name"] == "Raw Materials"

        resp = client.post("/api/items", json={"item_name": "No category", "uom": "KG"}, headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"]["validation"]["errors"] == ["Category is required"]

    def test_code_preview(self, client, auth_headers):
        resp = client.post("/api/items/code-preview", json={"category_name": "Paper", "gsm": "abc"}, headers=auth_headers)
        assert resp.json() == {
            "success": False,
            "item_code": None,
            "validation": {"errors": ["GSM must be a number"], "warnings": ["Qualifier is missing", "Size is missing"]},
        }

    def test_update_delete_and_export(self, client, auth_headers):
        _create_item(client, auth_headers)
        resp = client.put("/api/items/RAW001", json={"item_name": "Renamed"}, headers=auth_headers)
        assert resp.json()["item_name"] == "Renamed"

        resp = client.post("/api/items/export", json={}, headers=auth_headers)
        assert resp.headers["content-disposition"] == 'attachment; filename="items_export.csv"'
        assert resp.text.splitlines()[1].startswith("RAW001,Renamed")

        assert client.delete("/api/items/RAW001", headers=auth_headers).status_code == 204
        assert client.get("/api/items/RAW001", headers=auth_headers).status_code == 404

    def test_bulk_update_and_with_stock(self, client, auth_headers):
        _create_item(client, auth_headers, "A1")
        _create_item(client, auth_headers, "A2")
        resp = client.post("/api/items/bulk-update", json={"item_codes": ["A1"], "status": "inactive"}, headers=auth_headers)
        assert resp.json() == {"updated": 1}
        assert [i["item_code"] for i in client.get("/api/items/with-stock", headers=auth_headers).json()] == ["A2"]


class TestMovements:
    def test_grn_issue_flow(self, client, auth_headers):
        _create_item(client, auth_headers)
        grn = _receive(client, auth_headers, qty=100)
        assert grn["qty_received"] == 100

        resp = client.post("/api/issues", json={
            "date": date.today().isoformat(), "item_code": "RAW001", "qty_issued": 150, "purpose": "Production",
        }, headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Insufficient stock. Available: 100, Requested: 150"

        resp = client.post("/api/issues", json={
            "date": date.today().isoformat(), "item_code": "RAW001", "qty_issued": 40, "purpose": "Production",
        }, headers=auth_headers)
        assert resp.status_code == 201
        issue = resp.json()

        resp = client.put(f"/api/issues/{issue['id']}", json={"qty_issued": 30}, headers=auth_headers)
        assert resp.json()["qty_issued"] == 30
        assert client.get("/api/items/RAW001", headers=auth_headers).json()["current_qty"] == 70

        assert client.delete(f"/api/grn/{grn['id']}", headers=auth_headers).status_code == 400
        assert client.delete(f"/api/issues/{issue['id']}", headers=auth_headers).status_code == 204
        assert client.delete(f"/api/grn/{grn['id']}", headers=auth_headers).status_code == 204
        assert client.get("/api/grn", headers=auth_headers).json() == []

    def test_grn_unknown_item(self, client, auth_headers):
        resp = client.post("/api/grn", json={
            "grn_number": "G1", "date": "2024-01-15", "item_code": "NOPE", "qty_received": 5, "uom": "KG",
        }, headers=auth_headers)
        assert resp.status_code == 400

    def test_stock_summary_and_opening(self, client, auth_headers):
        _create_item(client, auth_headers)
        resp = client.post("/api/stock/opening", json={"item_code": "RAW001", "opening_qty": 5}, headers=auth_headers)
        assert resp.status_code == 201
        resp = client.post("/api/stock/opening", json={"item_code": "NEW", "opening_qty": 5}, headers=auth_headers)
        assert resp.status_code == 404

        data = client.get("/api/stock/summary", headers=auth_headers).json()
        assert data["stats"]["total_items"] == 1
        row = data["items"][0]
        assert (row["current_qty"], row["stock_level"], row["cover_badge"]) == (5, "low", "good")

        assert client.get("/api/stock/summary", params={"sort_by": "nope"}, headers=auth_headers).status_code == 400
        export = client.get("/api/stock/summary/export", headers=auth_headers)
        assert export.text.startswith("item_code,item_name,category_name,uom,opening_qty")

        opening = client.get("/api/stock/opening-summary", headers=auth_headers).json()
        assert opening["totals"]["total_opening_qty"] == 5


class TestUploads:
    def test_item_master_upload_with_resolutions(self, client, auth_headers):
        content = "item_name,category_name,uom,qualifier\nArt Paper,Paper,KG,ART\n"
        preview = client.post("/api/uploads/item-master/preview", files=csv_file(content), headers=auth_headers).json()
        assert preview == {"total": 1, "errors": [], "conflicts": []}

        assert client.post("/api/uploads/item-master", files=csv_file(content), headers=auth_headers).json()["inserted"] == 1
        renamed = content.replace("Art Paper", "Art Paper 2")
        result = client.post(
            "/api/uploads/item-master", files=csv_file(renamed), data={"resolutions": '{"2": "update"}'},
            headers=auth_headers,
        ).json()
        assert result["updated"] == 1
        assert client.get("/api/items/PAP_ART", headers=auth_headers).json()["item_name"] == "Art Paper 2"

    def test_bad_resolutions(self, client, auth_headers):
        resp = client.post(
            "/api/uploads/item-master", files=csv_file("item_name,category_name,uom\nA,B,KG\n"),
            data={"resolutions": '{"2": "explode"}'}, headers=auth_headers,
        )
        assert resp.status_code == 400

    def test_only_csv_accepted(self, client, auth_headers):
        resp = client.post("/api/uploads/grn", files=csv_file("a,b\n", name="grn.xlsx"), headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Only .csv files are supported"

    def test_grn_validation_errors(self, client, auth_headers):
        content = "grn_number,date,item_code,qty_received,uom\nG1,2024-01-15,NOPE,5,KG\n"
        resp = client.post("/api/uploads/grn", files=csv_file(content), headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"]["errors"][0]["row"] == 2

    def test_issue_upload_and_logs(self, client, auth_headers):
        _create_item(client, auth_headers)
        _receive(client, auth_headers, qty=10)
        content = "date,item_code,qty_issued,purpose\n2024-01-16,RAW001,4,Production\n"
        assert client.post("/api/uploads/issues", files=csv_file(content, "issues.csv"), headers=auth_headers).json()["success"] == 1
        logs = client.get("/api/uploads/logs", headers=auth_headers).json()
        assert [(log["file_name"], log["file_type"]) for log in logs] == [("issues.csv", "issue")]

    def test_opening_stock_dry_run(self, client, auth_headers):
        content = "item_code,opening_qty\nRAW001,5\n,3\n"
        resp = client.post(
            "/api/uploads/opening-stock", params={"dry_run": True}, files=csv_file(content), headers=auth_headers,
        )
        assert resp.json()["errors"] == [{"row": 2, "message": "Item code is required"}]
        assert client.get("/api/items", headers=auth_headers).json() == []

    def test_template(self, client):
        resp = client.get("/api/uploads/templates/opening_stock")
        assert resp.text.splitlines()[0] == "item_code,item_name,category,opening_qty,uom"
        assert client.get("/api/uploads/templates/nope").status_code == 404


class TestReportsAndInsights:
    def test_dashboard_alerts_analytics(self, client, auth_headers):
        _create_item(client, auth_headers)
        dashboard = client.get("/api/reports/dashboard", headers=auth_headers).json()
        assert dashboard["stock_distribution"]["zero"] == 1
        assert dashboard["stock_distribution"]["low"] == 1

        alerts = client.get("/api/reports/alerts", params={"alert_type": "out_of_stock"}, headers=auth_headers).json()
        assert [a["item_code"] for a in alerts["alerts"]] == ["RAW001"]
        assert client.get("/api/reports/alerts", params={"alert_type": "bad"}, headers=auth_headers).status_code == 400
        export = client.get("/api/reports/alerts/export", headers=auth_headers)
        assert export.text.splitlines()[1].startswith("RAW001,")

        assert client.get("/api/reports/analytics", headers=auth_headers).json()["totals"]["total_items"] == 1

    def test_snapshot_and_export(self, client, auth_headers):
        assert client.get("/api/insights/export", headers=auth_headers).status_code == 404
        _create_item(client, auth_headers)
        assert client.post("/api/insights/snapshots", json={}, headers=auth_headers).status_code == 201
        assert len(client.get("/api/insights/snapshots", headers=auth_headers).json()) == 1

        resp = client.get("/api/insights/export", params={"format": "csv"}, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.headers["content-disposition"] == (
            f'attachment; filename="stock_history_{date.today().isoformat()}.csv"'
        )
        assert client.get("/api/insights/export", params={"format": "pdf"}, headers=auth_headers).status_code == 400

    def test_analyze_without_key(self, client, auth_headers, monkeypatch):
        from inventrack.config import settings

        monkeypatch.setattr(settings, "OPENAI_API_KEY", "")
        resp = client.post("/api/insights/analyze", json={"query": "trends?"}, headers=auth_headers)
        assert resp.status_code == 500
        assert resp.json() == {"error": "OpenAI API key not configured"}

    def test_api_status(self, client, auth_headers):
        status = client.get("/api/insights/api-status", headers=auth_headers).json()
        assert set(status) == {"openai", "email"}
        resp = client.post("/api/insights/test-connection", json={"service": "slack"}, headers=auth_headers)
        assert resp.json()["message"] == "Unknown service"

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}
