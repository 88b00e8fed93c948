"""Integration tests for FastAPI endpoints."""

import base64

import pytest
from fastapi.testclient import TestClient
from api import main
from api.main import app
from ffragrance.data.repository import Repository, get_repository


@pytest.fixture
def repository():
    return Repository()


@pytest.fixture
def client(repository):
    """Create test client backed by an in-memory repository."""
    app.dependency_overrides[get_repository] = lambda: repository
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def linalool(client):
    """Linalool in the Florals category."""
    category = client.post("/api/categories", json={"name": "Florals", "color_hex": "#FF66CC"}).json()
    response = client.post(
        "/api/chemicals",
        json={
            "name": "Linalool",
            "cas_number": "78-70-6",
            "ifra_safe_limit": 10.0,
            "pyramid_note": "topmid",
            "category_id": category["id"],
        },
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def formula(client, linalool):
    """Formula with 90 g of DPG and 10 g of linalool."""
    response = client.post(
        "/api/formulas",
        json={"name": "Lavender Water", "diluent_type": "DPG", "diluent_weight": 90.0},
    )
    assert response.status_code == 201
    data = response.json()
    line = client.post(
        f"/api/formulas/{data['id']}/lines",
        json={"chemical_id": linalool["id"], "amount_grams": 10.0},
    )
    assert line.status_code == 201
    return data


class TestHealthEndpoints:
    """Test health and info endpoints."""

    def test_root_endpoint(self, client):
        """Test root endpoint returns API info."""
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Ffragrance API"

    def test_health_endpoint(self, client):
        """Test health endpoint returns healthy status."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data


class TestReferenceEndpoints:
    """Test reference data endpoints."""

    def test_get_pyramid_notes(self, client):
        """Test pyramid notes are listed top to base."""
        response = client.get("/api/reference/pyramid-notes")
        assert response.status_code == 200
        values = [n["value"] for n in response.json()]
        assert values == ["top", "topmid", "mid", "midbase", "base"]

    def test_get_diluent_types(self, client):
        """Test diluent labels."""
        response = client.get("/api/reference/diluent-types")
        values = [d["value"] for d in response.json()]
        assert "Perfumer's Alcohol" in values
        assert "DPG" in values


class TestInventoryEndpoints:
    """Test category, tag and chemical endpoints."""

    def test_category_lifecycle(self, client, linalool):
        """Test a category in use cannot be deleted."""
        [category] = client.get("/api/categories").json()
        assert category["chemical_count"] == 1

        response = client.delete(f"/api/categories/{category['id']}")
        assert response.status_code == 409
        assert "still has ingredients" in response.json()["detail"]

    def test_delete_empty_category(self, client):
        """Test deleting an unused category."""
        category = client.post("/api/categories", json={"name": "Musks"}).json()
        assert category["color_hex"] == "#808080"
        assert client.delete(f"/api/categories/{category['id']}").status_code == 204
        assert client.get("/api/categories").json() == []

    def test_tags(self, client, linalool):
        """Test creating, assigning and deleting a tag."""
        tag = client.post("/api/tags", json={"name": "Floral", "red": 1.0, "blue": 0.0}).json()
        assert tag["color_hex"] == "#FF0000"

        response = client.put(f"/api/chemicals/{linalool['id']}/tags/{tag['id']}")
        assert response.json()["tag_ids"] == [tag["id"]]

        assert client.delete(f"/api/tags/{tag['id']}").status_code == 204
        assert client.get(f"/api/chemicals/{linalool['id']}").json()["tag_ids"] == []

    def test_search_chemicals(self, client, linalool):
        """Test chemical search by category name."""
        client.post("/api/chemicals", json={"name": "Vanillin", "pyramid_note": "base"})
        names = [c["name"] for c in client.get("/api/chemicals", params={"q": "floral"}).json()]
        assert names == ["Linalool"]

    def test_group_by_pyramid(self, client, linalool):
        """Test chemicals grouped by pyramid tier."""
        client.post("/api/chemicals", json={"name": "Vanillin", "pyramid_note": "base"})
        groups = client.get("/api/chemicals/by-pyramid").json()
        assert [g["pyramid_note"] for g in groups] == ["topmid", "base"]

    def test_invalid_pyramid_note(self, client):
        """Test an unknown pyramid note is rejected."""
        response = client.post("/api/chemicals", json={"name": "X", "pyramid_note": "heart"})
        assert response.status_code == 400
        assert "Invalid pyramid note" in response.json()["detail"]

    def test_unknown_category(self, client):
        """Test referencing a missing category is a 404."""
        response = client.post("/api/chemicals", json={"name": "X", "category_id": "missing"})
        assert response.status_code == 404

    def test_update_chemical(self, client, linalool):
        """Test partial updates leave other fields alone."""
        image = base64.b64encode(b"png-bytes").decode("ascii")
        response = client.patch(
            f"/api/chemicals/{linalool['id']}",
            json={"ifra_safe_limit": 5.0, "unit": "ml", "name": None, "structure_image": image},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["ifra_safe_limit"] == 5.0
        assert data["unit"] == "ml"
        assert data["name"] == "Linalool"
        assert data["structure_image"] == image

    def test_on_hand_follows_unit(self, client):
        """Test stock on hand is reported in the chemical's unit."""
        chemical = client.post(
            "/api/chemicals",
            json={"name": "Ethyl Vanillin", "unit": "ml", "quantity_grams": 12.0, "quantity_ml": 30.0},
        ).json()
        assert chemical["on_hand"] == 30.0

        updated = client.patch(f"/api/chemicals/{chemical['id']}", json={"unit": "grams"}).json()
        assert updated["on_hand"] == 12.0

    def test_get_missing_chemical(self, client):
        """Test an unknown chemical is a 404."""
        assert client.get("/api/chemicals/missing").status_code == 404

    def test_delete_chemical_in_use(self, client, formula, linalool):
        """Test deleting a chemical used by a formula is refused."""
        assert client.get(f"/api/chemicals/{linalool['id']}").json()["in_use"] is True
        response = client.delete(f"/api/chemicals/{linalool['id']}")
        assert response.status_code == 409
        assert "used in one or more formulas" in response.json()["detail"]


class TestFormulaEndpoints:
    """Test formula and line endpoints."""

    def test_get_formula_summary(self, client, formula):
        """Test the summary carries totals and components."""
        data = client.get(f"/api/formulas/{formula['id']}").json()
        assert data["total_formula_weight"] == pytest.approx(100.0)
        assert data["diluent_type"] == "DPG"
        [component] = data["components"]
        assert component["chemical_name"] == "Linalool"
        assert component["final_concentration"] == pytest.approx(10.0)
        assert component["is_over_limit"] is False

    def test_list_and_search(self, client, formula):
        """Test listing and searching formulas."""
        client.post("/api/formulas", json={"name": "Oud Night"})
        assert [f["name"] for f in client.get("/api/formulas").json()] == ["Lavender Water", "Oud Night"]
        assert [f["name"] for f in client.get("/api/formulas", params={"q": "oud"}).json()] == ["Oud Night"]

    def test_over_limit_after_edit(self, client, formula):
        """Test raising an amount flips the IFRA flag."""
        summary = client.get(f"/api/formulas/{formula['id']}").json()
        line_id = summary["components"][0]["line_id"]

        response = client.patch(f"/api/formulas/{formula['id']}/lines/{line_id}", json={"amount_grams": 20.0})
        assert response.status_code == 200

        [metric] = client.get(f"/api/formulas/{formula['id']}/metrics").json()
        assert metric["final_concentration"] == pytest.approx(20.0 / 110.0 * 100)
        assert metric["is_over_limit"] is True

    def test_negative_amount_rejected(self, client, formula, linalool):
        """Test negative and non-numeric amounts fail validation."""
        response = client.post(
            f"/api/formulas/{formula['id']}/lines",
            json={"chemical_id": linalool["id"], "amount_grams": -1.0},
        )
        assert response.status_code == 422

    def test_add_line_unknown_chemical(self, client, formula):
        """Test adding a line for a missing chemical is a 404."""
        response = client.post(
            f"/api/formulas/{formula['id']}/lines",
            json={"chemical_id": "missing", "amount_grams": 1.0},
        )
        assert response.status_code == 404

    def test_remove_line(self, client, formula):
        """Test removing a line, twice."""
        line_id = client.get(f"/api/formulas/{formula['id']}").json()["components"][0]["line_id"]
        url = f"/api/formulas/{formula['id']}/lines/{line_id}"
        assert client.delete(url).status_code == 204
        assert client.delete(url).status_code == 204
        assert client.get(f"/api/formulas/{formula['id']}").json()["line_count"] == 0

    def test_breakdown(self, client, formula):
        """Test category breakdown."""
        [share] = client.get(f"/api/formulas/{formula['id']}/breakdown").json()
        assert share["name"] == "Florals"
        assert share["color_hex"] == "#FF66CC"
        assert share["total_concentration"] == pytest.approx(10.0)

    def test_scale(self, client, formula):
        """Test scaling doubles line and diluent."""
        response = client.post(f"/api/formulas/{formula['id']}/scale", json={"target_total_weight": 200.0})
        assert response.status_code == 200
        data = response.json()
        assert data["diluent_weight"] == pytest.approx(180.0)
        assert data["components"][0]["original_amount"] == pytest.approx(20.0)

    def test_scale_empty_formula(self, client):
        """Test scaling a zero-weight formula is a 400."""
        empty = client.post("/api/formulas", json={"name": "Empty"}).json()
        response = client.post(f"/api/formulas/{empty['id']}/scale", json={"target_total_weight": 50.0})
        assert response.status_code == 400
        assert "zero-weight" in response.json()["detail"]

    def test_scale_invalid_target(self, client, formula):
        """Test non-positive targets fail validation."""
        response = client.post(f"/api/formulas/{formula['id']}/scale", json={"target_total_weight": 0})
        assert response.status_code == 422

    def test_update_formula(self, client, formula):
        """Test editing formula details."""
        response = client.patch(
            f"/api/formulas/{formula['id']}",
            json={"name": "Lavender Mist", "diluent_type": "Perfumer's Alcohol"},
        )
        data = response.json()
        assert data["name"] == "Lavender Mist"
        assert data["diluent_type"] == "Perfumer's Alcohol"

    def test_invalid_diluent_type(self, client):
        """Test an unknown diluent is rejected."""
        response = client.post("/api/formulas", json={"name": "X", "diluent_type": "Water"})
        assert response.status_code == 400

    def test_duplicate_and_delete(self, client, formula, linalool):
        """Test duplicating, then deleting both copies frees the chemical."""
        copy = client.post(f"/api/formulas/{formula['id']}/duplicate", json={}).json()
        assert copy["name"] == "Copy of Lavender Water"
        assert copy["line_count"] == 1

        for formula_id in (formula["id"], copy["id"]):
            assert client.delete(f"/api/formulas/{formula_id}").status_code == 204
        assert client.delete(f"/api/formulas/{formula['id']}").status_code == 404
        assert client.delete(f"/api/chemicals/{linalool['id']}").status_code == 204

    def test_preview_line(self, client, formula, linalool):
        """Test previewing a line reports its concentration without saving it."""
        response = client.get(
            f"/api/formulas/{formula['id']}/lines/preview",
            params={"chemical_id": linalool["id"], "amount_grams": 25.0, "dilution_percentage": 40.0},
        )
        assert response.status_code == 200
        data = response.json()
        # 10 g pure in 125 g
        assert data["final_concentration"] == pytest.approx(8.0)
        assert data["is_over_limit"] is False
        assert client.get(f"/api/formulas/{formula['id']}").json()["line_count"] == 1

    def test_preview_line_negative_amount(self, client, formula, linalool):
        """Test the preview validates its amount."""
        response = client.get(
            f"/api/formulas/{formula['id']}/lines/preview",
            params={"chemical_id": linalool["id"], "amount_grams": -1},
        )
        assert response.status_code == 422

    def test_scale_overflow_rejected(self, client, linalool):
        """Test a scale that would overflow is a 400 and changes nothing."""
        trace = client.post("/api/formulas", json={"name": "Trace"}).json()
        client.post(
            f"/api/formulas/{trace['id']}/lines",
            json={"chemical_id": linalool["id"], "amount_grams": 1e-10},
        )
        response = client.post(f"/api/formulas/{trace['id']}/scale", json={"target_total_weight": 1e308})
        assert response.status_code == 400
        data = client.get(f"/api/formulas/{trace['id']}").json()
        assert data["total_formula_weight"] == pytest.approx(1e-10)

    def test_delete_missing_formula(self, client):
        """Test deleting an unknown formula is a 404 with a detail."""
        response = client.delete("/api/formulas/missing")
        assert response.status_code == 404
        assert "not found" in response.json()["detail"]

    def test_formula_sheet_pdf(self, client, formula, monkeypatch):
        """Test the PDF sheet is served as a download."""
        rendered = []

        def fake_generate_pdf(summary, breakdown, output_path):
            rendered.append(summary.formula.name)
            output_path.write_bytes(b"%PDF-1.7\n")
            return output_path

        monkeypatch.setattr(main.sheet_renderer, "generate_pdf", fake_generate_pdf)

        response = client.get(f"/api/formulas/{formula['id']}/sheet.pdf")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/pdf")
        assert "Formula_Sheet_" in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")
        assert rendered == ["Lavender Water"]

    def test_formula_sheet_pdf_missing(self, client):
        """Test a PDF for an unknown formula is a 404."""
        assert client.get("/api/formulas/missing/sheet.pdf").status_code == 404

    def test_formula_sheet(self, client, formula):
        """Test the HTML formula sheet."""
        response = client.get(f"/api/formulas/{formula['id']}/sheet")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "Lavender Water" in response.text


class TestExchangeEndpoints:
    """Test CSV export and import."""

    def test_export_import(self, client, formula):
        """Test an export can be imported into an empty library."""
        response = client.get("/api/export/csv")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        content = response.text

        app.dependency_overrides[get_repository] = lambda: Repository()
        imported = client.post("/api/import/csv", json={"content": content}).json()

        assert imported["imported"]["chemicals"] == 1
        assert imported["imported"]["formula_lines"] == 1
        assert imported["total_skipped"] == 0
