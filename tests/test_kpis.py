"""Tests for KPI endpoints."""

import pytest
from fastapi import status


@pytest.fixture
def kpi_payload(manual_integration):
    """Revenue per employee without a target, bound to the manual fields."""
    return {
        "name": "Revenue per Employee",
        "formula": "revenue / employees",
        "sources": [
            {"dataFieldId": manual_integration["fields"]["revenue"]["id"]},
            {"dataFieldId": manual_integration["fields"]["employees"]["id"]},
        ],
    }


class TestKPIEndpoints:
    """Test KPI CRUD operations."""

    def test_create_kpi_evaluates(self, revenue_kpi):
        """A new KPI is evaluated against the latest source values."""
        assert revenue_kpi["currentValue"] == 11000
        assert revenue_kpi["progress"] == 110.0
        assert revenue_kpi["onTrack"] is True
        assert revenue_kpi["calculationError"] is None
        assert [s["alias"] for s in revenue_kpi["sources"]] == ["revenue", "employees"]
        assert revenue_kpi["sources"][0]["integrationName"] == "Finance"
        assert revenue_kpi["access"]["isOwner"] is True

    def test_create_kpi_unauthorized(self, client, kpi_payload):
        """Test that unauthenticated KPI creation fails."""
        client.cookies.clear()
        response = client.post("/api/kpis", json=kpi_payload)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_create_without_data_reports_missing(self, client, admin_user, kpi_payload):
        response = client.post("/api/kpis", json=kpi_payload, headers=admin_user["headers"])

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["currentValue"] is None
        assert data["calculationError"] == "Missing data for: revenue, employees"

    def test_custom_alias(self, client, admin_user, manual_integration, kpi_payload):
        kpi_payload["formula"] = "rev / employees"
        kpi_payload["sources"][0]["alias"] = "rev"

        response = client.post("/api/kpis", json=kpi_payload, headers=admin_user["headers"])

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["sources"][0]["alias"] == "rev"

    def test_unused_source_rejected(self, client, admin_user, kpi_payload):
        kpi_payload["formula"] = "revenue * 2"

        response = client.post("/api/kpis", json=kpi_payload, headers=admin_user["headers"])

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        data = response.json()
        assert data["error_code"] == "FORMULA_ERROR"
        assert data["detail"] == "Sources not used in formula: employees"

    def test_undeclared_variable_rejected(self, client, admin_user, kpi_payload):
        kpi_payload["formula"] = "revenue / employees + cost"

        response = client.post("/api/kpis", json=kpi_payload, headers=admin_user["headers"])

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "FORMULA_ERROR"
        assert "cost" in response.json()["detail"]

    def test_duplicate_alias_rejected(self, client, admin_user, manual_integration, kpi_payload):
        kpi_payload["sources"][1]["alias"] = "revenue"

        response = client.post("/api/kpis", json=kpi_payload, headers=admin_user["headers"])

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"] == "Duplicate alias 'revenue'"

    def test_invalid_formula_syntax(self, client, admin_user, kpi_payload):
        kpi_payload["formula"] = "(revenue / employees"

        response = client.post("/api/kpis", json=kpi_payload, headers=admin_user["headers"])

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_list_kpis(self, client, admin_user, revenue_kpi):
        """Test listing KPIs."""
        response = client.get("/api/kpis", headers=admin_user["headers"])

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total"] == 1
        assert data["kpis"][0]["currentValue"] == 11000

    def test_get_kpi(self, client, admin_user, revenue_kpi):
        """Test getting a specific KPI."""
        response = client.get(f"/api/kpis/{revenue_kpi['id']}", headers=admin_user["headers"])

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["name"] == "Revenue per Employee"

    def test_get_nonexistent_kpi(self, client, admin_user):
        """Test getting a KPI that doesn't exist."""
        response = client.get(
            "/api/kpis/00000000-0000-0000-0000-000000000000",
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_update_target(self, client, admin_user, revenue_kpi):
        response = client.patch(
            f"/api/kpis/{revenue_kpi['id']}",
            json={"targetValue": 22000},
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["targetValue"] == 22000
        assert data["progress"] == 50.0
        assert data["onTrack"] is False

    def test_clear_target(self, client, admin_user, revenue_kpi):
        response = client.patch(
            f"/api/kpis/{revenue_kpi['id']}",
            json={"targetValue": None, "targetDirection": None},
            headers=admin_user["headers"],
        )

        data = response.json()
        assert data["targetValue"] is None
        assert data["progress"] is None
        assert data["onTrack"] is None

    def test_zero_target_is_not_on_track(self, client, admin_user, revenue_kpi):
        response = client.patch(
            f"/api/kpis/{revenue_kpi['id']}",
            json={"targetValue": 0},
            headers=admin_user["headers"],
        )

        data = response.json()
        assert data["targetValue"] == 0
        assert data["progress"] is None
        assert data["onTrack"] is None

    def test_update_formula_checks_sources(self, client, admin_user, revenue_kpi):
        response = client.patch(
            f"/api/kpis/{revenue_kpi['id']}",
            json={"formula": "revenue"},
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "FORMULA_ERROR"

    def test_new_values_recalculate(self, client, admin_user, revenue_kpi, manual_integration, submit_values):
        """Entering values recalculates the KPIs that use them."""
        result = submit_values(manual_integration, timestamp="2099-01-01T00:00:00Z", employees=20)
        assert result["recordsCount"] == 1
        assert result["kpisRecalculated"] == 1

        response = client.get(f"/api/kpis/{revenue_kpi['id']}", headers=admin_user["headers"])
        assert response.json()["currentValue"] == 5500

        listing = client.get("/api/kpis", headers=admin_user["headers"]).json()
        assert listing["kpis"][0]["currentValue"] == 5500

    def test_recalculate(self, client, admin_user, revenue_kpi):
        response = client.post(f"/api/kpis/{revenue_kpi['id']}/recalculate", headers=admin_user["headers"])

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["currentValue"] == 11000
        assert response.json()["calculatedAt"] is not None

    def test_division_by_zero_reported(self, client, admin_user, revenue_kpi, manual_integration, submit_values):
        submit_values(manual_integration, timestamp="2099-01-01T00:00:00Z", employees=0)

        data = client.get(f"/api/kpis/{revenue_kpi['id']}", headers=admin_user["headers"]).json()

        assert data["currentValue"] is None
        assert data["calculationError"] == "Division by zero"

    def test_delete_kpi(self, client, admin_user, revenue_kpi):
        """Test deleting a KPI."""
        response = client.delete(f"/api/kpis/{revenue_kpi['id']}", headers=admin_user["headers"])
        assert response.status_code == status.HTTP_204_NO_CONTENT

        get_response = client.get(f"/api/kpis/{revenue_kpi['id']}", headers=admin_user["headers"])
        assert get_response.status_code == status.HTTP_404_NOT_FOUND

    def test_data_field_in_use_cannot_be_deleted(self, client, admin_user, revenue_kpi, manual_integration):
        field_id = manual_integration["fields"]["revenue"]["id"]

        response = client.delete(f"/api/data-fields/{field_id}", headers=admin_user["headers"])

        assert response.status_code == status.HTTP_409_CONFLICT
        assert "Revenue per Employee" in response.json()["detail"]

        client.delete(f"/api/kpis/{revenue_kpi['id']}", headers=admin_user["headers"])
        response = client.delete(f"/api/data-fields/{field_id}", headers=admin_user["headers"])
        assert response.status_code == status.HTTP_204_NO_CONTENT


class TestFormulaTools:
    """Formula validation and the field picker."""

    def test_validate_formula_with_sources(self, client, admin_user, manual_integration):
        response = client.post(
            "/api/kpis/validate-formula",
            json={
                "formula": "revenue / headcount",
                "sources": [
                    {"dataFieldId": manual_integration["fields"]["revenue"]["id"]},
                    {"dataFieldId": manual_integration["fields"]["employees"]["id"]},
                ],
            },
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["valid"] is False
        assert data["variables"] == ["revenue", "headcount"]
        assert data["undeclaredVariables"] == ["headcount"]
        assert data["unusedAliases"] == ["employees"]

    def test_validate_formula_syntax_only(self, client, admin_user):
        response = client.post(
            "/api/kpis/validate-formula",
            json={"formula": "(a + b) / c"},
            headers=admin_user["headers"],
        )

        data = response.json()
        assert data["valid"] is True
        assert data["error"] is None
        assert data["variables"] == ["a", "b", "c"]

    def test_validate_formula_with_aliases(self, client, admin_user):
        response = client.post(
            "/api/kpis/validate-formula",
            json={"formula": "a + b", "aliases": ["a", "b", "c"]},
            headers=admin_user["headers"],
        )

        data = response.json()
        assert data["valid"] is False
        assert data["unusedAliases"] == ["c"]

    def test_available_fields(self, client, admin_user, revenue_kpi):
        response = client.get("/api/kpis/available-fields", headers=admin_user["headers"])

        assert response.status_code == status.HTTP_200_OK
        groups = response.json()["integrations"]
        assert len(groups) == 1
        assert groups[0]["integrationName"] == "Finance"
        fields = {f["variableName"]: f for f in groups[0]["fields"]}
        assert fields["revenue"]["lastValue"] == 110000
        assert fields["employees"]["lastValue"] == 10


class TestKpiHistory:
    def test_history(self, client, admin_user, revenue_kpi):
        response = client.get(
            f"/api/kpis/{revenue_kpi['id']}/history",
            params={"period": "7d"},
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["period"] == "7d"
        assert data["interval"] == "daily"
        assert data["data"][-1]["value"] == 11000
        assert data["comparison"]["currentValue"] == 11000

    def test_default_period(self, client, admin_user, revenue_kpi):
        data = client.get(f"/api/kpis/{revenue_kpi['id']}/history", headers=admin_user["headers"]).json()

        assert data["period"] == "30d"

    @pytest.mark.parametrize("params", [{"period": "2w"}, {"period": "7d", "interval": "yearly"}])
    def test_invalid_history_params(self, client, admin_user, revenue_kpi, params):
        response = client.get(
            f"/api/kpis/{revenue_kpi['id']}/history",
            params=params,
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
