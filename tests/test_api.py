# tests/test_api.py

"""
Routes FastAPI, Supabase mocké.
On vérifie les codes HTTP et la forme du JSON, pas les calculs
(couverts par les tests du moteur).
"""

import pytest
from unittest.mock import patch
from fastapi.testclient import TestClient

from api.main import app


@pytest.fixture
def client():
    return TestClient(app)


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestJourneyRoute:

    def test_journey(self, client, jane_bundle):
        with patch("services.database.load_contact_bundle", return_value=jane_bundle):
            response = client.get("/journey/c_001")

        assert response.status_code == 200
        body = response.json()
        assert body["contact_id"] == "c_001"
        assert body["total_touchpoints"] == 10
        assert body["sources"] == {"typeform": 1, "close": 7, "calendly": 2}

    def test_journey_with_scope(self, client, jane_bundle):
        with patch("services.database.load_contact_bundle", return_value=jane_bundle):
            response = client.get(
                "/journey/c_001", params={"date_range": "2025-03-01_2025-03-01"}
            )

        assert response.status_code == 200
        assert response.json()["total_touchpoints"] == 4

    def test_unknown_contact(self, client):
        with patch("services.database.load_contact_bundle", return_value=None):
            response = client.get("/journey/nope")

        assert response.status_code == 404

    def test_bad_date_range(self, client, jane_bundle):
        with patch("services.database.load_contact_bundle", return_value=jane_bundle):
            response = client.get("/journey/c_001", params={"date_range": "2025-02-01"})

        assert response.status_code == 400

    def test_database_down(self, client):
        with patch("services.database.load_contact_bundle", side_effect=RuntimeError("boom")):
            response = client.get("/journey/c_001")

        assert response.status_code == 500


class TestDashboardRoute:

    def test_dashboard(self, client, bundles):
        with patch("services.database.load_contact_bundles", return_value=bundles):
            response = client.get("/dashboard", params={"user_id": "all"})

        assert response.status_code == 200
        body = response.json()
        assert body["contacts_analyzed"] == 2
        assert body["user_filter"] is None
        assert body["totals"]["closed_won"] == 1
        assert {r["user_id"] for r in body["reps"]} == {"rep_1", "rep_2"}

    def test_dashboard_preset(self, client, bundles):
        with patch("services.database.load_contact_bundles", return_value=bundles):
            response = client.get("/dashboard", params={"date_range": "last_30_days"})

        assert response.status_code == 200
        assert response.json()["date_range"]["label"] == "Last 30 days"

    def test_reps(self, client, bundles):
        with patch("services.database.load_contact_bundles", return_value=bundles):
            response = client.get("/dashboard/reps")

        assert response.status_code == 200
        assert response.json()["count"] == 2


class TestKpiRoutes:

    @pytest.fixture(autouse=True)
    def no_database_config(self):
        with patch("services.database.load_custom_fields", return_value=[]), \
             patch("services.database.load_kpi_formulas", return_value=[]):
            yield

    def test_fields(self, client):
        response = client.get("/kpi/fields", params={"source": "typeform"})

        assert response.status_code == 200
        assert [f["id"] for f in response.json()["fields"]] == ["typeform_forms_count"]

    def test_fields_unknown_source(self, client):
        assert client.get("/kpi/fields", params={"source": "hubspot"}).status_code == 400

    def test_formulas_fall_back_to_catalogue(self, client):
        response = client.get("/kpi/formulas")

        assert response.status_code == 200
        ids = {f["id"] for f in response.json()["formulas"]}
        assert "closing_rate" in ids
        assert all(f["field_issues"] == [] for f in response.json()["formulas"])

    def test_validate_ok(self, client):
        response = client.post("/kpi/validate", json={"formula": "close_deals_won * 2"})

        assert response.json() == {"valid": True, "fields": ["close_deals_won"]}

    def test_validate_unknown_field(self, client):
        body = client.post("/kpi/validate", json={"formula": "nope / 2"}).json()

        assert body["valid"] is False
        assert body["error"] == "UNKNOWN_FIELD"

    def test_evaluate_division_by_zero_is_null(self, client):
        response = client.post("/kpi/evaluate", json={
            "formula": "(close_deals_won / close_deals_count) * 100",
            "values": {"close_deals_won": 0, "close_deals_count": 0},
        })

        assert response.status_code == 200
        assert response.json()["value"] is None

    def test_evaluate_overflow_is_null(self, client):
        response = client.post("/kpi/evaluate", json={
            "formula": "marketing_spend * 10 % 3",
            "values": {"marketing_spend": 1e308},
        })

        assert response.status_code == 200
        assert response.json()["value"] is None

    def test_evaluate_syntax_error(self, client):
        response = client.post("/kpi/evaluate", json={"formula": "close_deals_won /"})
        assert response.status_code == 400

    def test_dashboard_kpis(self, client, bundles):
        with patch("services.database.load_contact_bundles", return_value=bundles):
            response = client.get("/kpi/dashboard/setter")

        assert response.status_code == 200
        kpis = {k["kpi_id"]: k for k in response.json()["kpis"]}
        assert kpis["pick_up_rate"]["value"] == 50.0
        assert kpis["meetings_per_day"]["value"] is None

    def test_unknown_dashboard_type(self, client):
        response = client.get("/kpi/dashboard/nope")
        assert response.json()["kpis"] == []
