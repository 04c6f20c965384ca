"""Tests for dashboard and widget endpoints."""

import uuid

import pytest
from fastapi import status


@pytest.fixture
def add_widget(client, admin_user, dashboard):
    """Add a widget to the shared dashboard as the admin and return it."""

    def add(payload: dict, expected: int = status.HTTP_201_CREATED) -> dict:
        response = client.post(
            f"/api/dashboards/{dashboard['id']}/widgets",
            json=payload,
            headers=admin_user["headers"],
        )
        assert response.status_code == expected, response.text
        return response.json()

    return add


class TestDashboardEndpoints:
    def test_create_dashboard(self, dashboard, admin_user):
        assert dashboard["name"] == "Company Overview"
        assert dashboard["ownerId"] == admin_user["id"]
        assert dashboard["widgets"] == []
        assert dashboard["layout"] == {}
        assert dashboard["access"]["canManage"] is True

    def test_list_dashboards(self, client, admin_user, dashboard, add_widget, revenue_kpi):
        add_widget({"type": "number", "kpiId": revenue_kpi["id"]})

        response = client.get("/api/dashboards", headers=admin_user["headers"])

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total"] == 1
        assert data["dashboards"][0]["widgetCount"] == 1
        assert data["dashboards"][0]["ownerName"] == "Test Admin"

    def test_rename_dashboard(self, client, admin_user, dashboard):
        response = client.patch(
            f"/api/dashboards/{dashboard['id']}",
            json={"name": "  Board  ", "layout": {"cols": 12}},
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["name"] == "Board"
        assert response.json()["layout"] == {"cols": 12}

    def test_delete_dashboard(self, client, admin_user, dashboard, add_widget, revenue_kpi):
        add_widget({"type": "number", "kpiId": revenue_kpi["id"]})

        response = client.delete(f"/api/dashboards/{dashboard['id']}", headers=admin_user["headers"])
        assert response.status_code == status.HTTP_204_NO_CONTENT

        response = client.get(f"/api/dashboards/{dashboard['id']}", headers=admin_user["headers"])
        assert response.status_code == status.HTTP_404_NOT_FOUND

        # The KPI survives its widgets
        response = client.get(f"/api/kpis/{revenue_kpi['id']}", headers=admin_user["headers"])
        assert response.status_code == status.HTTP_200_OK


class TestWidgets:
    """Widget validation, placement and rendering."""

    def test_number_widget_rendered(self, client, admin_user, dashboard, add_widget, revenue_kpi):
        widget = add_widget({
            "type": "number",
            "kpiId": revenue_kpi["id"],
            "config": {"title": "Revenue / head", "format": "currency"},
        })

        assert widget["kpiName"] == "Revenue per Employee"
        assert widget["kpiData"]["currentValue"] == 11000
        view = widget["view"]
        assert view["kind"] == "number"
        assert view["formatted"] == "$11,000"
        assert view["formattedTarget"] == "$10,000"
        assert view["progress"] == 110.0
        assert view["progressBarPercent"] == 100
        assert view["barColor"] == "green"

        board = client.get(f"/api/dashboards/{dashboard['id']}", headers=admin_user["headers"]).json()
        assert [w["id"] for w in board["widgets"]] == [widget["id"]]
        assert board["widgets"][0]["view"]["formatted"] == "$11,000"

    @pytest.mark.parametrize(
        "payload,message",
        [
            ({"type": "pie"}, "Invalid widget type"),
            ({"type": "number"}, "require a kpiId"),
            ({"type": "image", "config": {}}, "require config.imageUrl"),
            ({"type": "image", "config": {"imageUrl": "javascript:alert(1)"}}, "http(s) URL"),
        ],
    )
    def test_invalid_widgets(self, add_widget, payload, message):
        data = add_widget(payload, expected=status.HTTP_400_BAD_REQUEST)
        assert message in data["detail"]

    def test_image_widget_cannot_have_kpi(self, add_widget, revenue_kpi):
        data = add_widget(
            {"type": "image", "kpiId": revenue_kpi["id"], "config": {"imageUrl": "https://example.com/a.png"}},
            expected=status.HTTP_400_BAD_REQUEST,
        )
        assert data["detail"] == "Image widgets cannot be bound to a KPI"

    def test_unknown_kpi(self, add_widget):
        add_widget({"type": "number", "kpiId": str(uuid.uuid4())}, expected=status.HTTP_404_NOT_FOUND)

    def test_image_widget(self, add_widget):
        widget = add_widget({
            "type": "image",
            "config": {"imageUrl": "https://example.com/logo.png", "objectFit": "stretch"},
        })

        assert widget["kpiId"] is None
        assert widget["kpiData"] is None
        assert widget["view"] == {
            "kind": "image",
            "title": None,
            "imageUrl": "https://example.com/logo.png",
            "alt": "Dashboard image",
            "fit": "contain",
        }

    def test_widgets_stack_below_existing(self, add_widget, revenue_kpi):
        first = add_widget({"type": "number", "kpiId": revenue_kpi["id"]})
        second = add_widget({
            "type": "gauge",
            "kpiId": revenue_kpi["id"],
            "position": {"x": 3, "y": 0, "w": 4, "h": 5},
        })
        third = add_widget({"type": "number", "kpiId": revenue_kpi["id"]})

        assert first["position"] == {"x": 0, "y": 0, "w": 3, "h": 2}
        assert second["position"] == {"x": 3, "y": 0, "w": 4, "h": 5}
        assert third["position"] == {"x": 0, "y": 5, "w": 3, "h": 2}

    def test_widget_needs_kpi_access(self, client, admin_user, dashboard, editor_user, revenue_kpi):
        """Editors of a dashboard can only bind KPIs they can view."""
        client.post(
            f"/api/dashboards/{dashboard['id']}/access",
            json={"userId": editor_user["id"], "permission": "EDIT"},
            headers=admin_user["headers"],
        )

        response = client.post(
            f"/api/dashboards/{dashboard['id']}/widgets",
            json={"type": "number", "kpiId": revenue_kpi["id"]},
            headers=editor_user["headers"],
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_update_widget_to_gauge(self, client, admin_user, dashboard, add_widget, revenue_kpi):
        widget = add_widget({"type": "number", "kpiId": revenue_kpi["id"]})

        response = client.patch(
            f"/api/dashboards/{dashboard['id']}/widgets/{widget['id']}",
            json={"type": "gauge", "config": {"showTarget": False}},
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_200_OK
        view = response.json()["view"]
        assert view["kind"] == "gauge"
        assert view["percentage"] == 100.0
        assert view["tier"] == "success"
        assert view["target"] is None
        assert view["showTarget"] is False

    def test_switch_to_image_drops_kpi(self, client, admin_user, dashboard, add_widget, revenue_kpi):
        widget = add_widget({"type": "number", "kpiId": revenue_kpi["id"]})

        response = client.patch(
            f"/api/dashboards/{dashboard['id']}/widgets/{widget['id']}",
            json={"type": "image", "config": {"imageUrl": "https://example.com/a.png"}},
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["kpiId"] is None

    def test_delete_widget(self, client, admin_user, dashboard, add_widget, revenue_kpi):
        widget = add_widget({"type": "number", "kpiId": revenue_kpi["id"]})

        response = client.delete(
            f"/api/dashboards/{dashboard['id']}/widgets/{widget['id']}",
            headers=admin_user["headers"],
        )
        assert response.status_code == status.HTTP_204_NO_CONTENT

        board = client.get(f"/api/dashboards/{dashboard['id']}", headers=admin_user["headers"]).json()
        assert board["widgets"] == []

    def test_deleting_kpi_removes_widgets(self, client, admin_user, dashboard, add_widget, revenue_kpi):
        add_widget({"type": "number", "kpiId": revenue_kpi["id"]})
        image = add_widget({"type": "image", "config": {"imageUrl": "https://example.com/a.png"}})

        client.delete(f"/api/kpis/{revenue_kpi['id']}", headers=admin_user["headers"])

        board = client.get(f"/api/dashboards/{dashboard['id']}", headers=admin_user["headers"]).json()
        assert [w["id"] for w in board["widgets"]] == [image["id"]]


class TestFailingKpi:
    """A KPI that cannot be evaluated only affects its own widgets."""

    @pytest.fixture
    def broken_kpi(self, client, admin_user, manual_integration):
        """Revenue per head, with a headcount of zero."""
        field = client.post(
            "/api/data-fields",
            json={"integrationId": manual_integration["id"], "name": "Headcount"},
            headers=admin_user["headers"],
        ).json()
        client.post(
            f"/api/integrations/{manual_integration['id']}/data",
            json={"values": [{"dataFieldId": field["id"], "value": 0}]},
            headers=admin_user["headers"],
        )
        response = client.post(
            "/api/kpis",
            json={
                "name": "Revenue per Head",
                "formula": "revenue / headcount",
                "sources": [
                    {"dataFieldId": manual_integration["fields"]["revenue"]["id"]},
                    {"dataFieldId": field["id"]},
                ],
            },
            headers=admin_user["headers"],
        )
        assert response.status_code == status.HTTP_201_CREATED, response.text
        return response.json()

    @pytest.fixture
    def widgets(self, add_widget, revenue_kpi, broken_kpi):
        healthy = add_widget({"type": "number", "kpiId": revenue_kpi["id"]})
        broken = add_widget({"type": "number", "kpiId": broken_kpi["id"]})
        return healthy, broken

    def test_dashboard_still_renders(self, client, admin_user, dashboard, widgets):
        healthy, broken = widgets

        response = client.get(f"/api/dashboards/{dashboard['id']}", headers=admin_user["headers"])

        assert response.status_code == status.HTTP_200_OK
        by_id = {w["id"]: w for w in response.json()["widgets"]}
        assert by_id[healthy["id"]]["kpiData"]["currentValue"] == 11000
        assert by_id[healthy["id"]]["kpiData"]["error"] is None
        assert by_id[broken["id"]]["kpiData"]["currentValue"] is None
        assert by_id[broken["id"]]["kpiData"]["error"] == "Division by zero"
        assert by_id[broken["id"]]["view"]["formatted"] == "--"

    def test_shared_dashboard_still_renders(self, client, admin_user, dashboard, widgets):
        healthy, broken = widgets
        link = client.post(
            "/api/sharing",
            json={"resourceType": "dashboard", "resourceId": dashboard["id"]},
            headers=admin_user["headers"],
        ).json()

        response = client.get(f"/api/shared/{link['token']}")

        assert response.status_code == status.HTTP_200_OK
        by_id = {w["id"]: w for w in response.json()["dashboard"]["widgets"]}
        assert by_id[healthy["id"]]["kpi"]["currentValue"] == 11000
        assert by_id[broken["id"]]["kpi"]["currentValue"] is None
        assert by_id[broken["id"]]["kpi"]["calculationError"] == "Division by zero"


class TestLayout:
    """Saving positions after drag and resize."""

    def test_only_listed_widgets_move(self, client, admin_user, dashboard, add_widget, revenue_kpi):
        first = add_widget({"type": "number", "kpiId": revenue_kpi["id"]})
        second = add_widget({"type": "number", "kpiId": revenue_kpi["id"]})

        response = client.patch(
            f"/api/dashboards/{dashboard['id']}/layout",
            json={"widgets": [{"id": first["id"], "position": {"x": 6, "y": 1, "w": 6, "h": 4}}]},
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_200_OK
        positions = {w["id"]: w["position"] for w in response.json()["widgets"]}
        assert positions[first["id"]] == {"x": 6, "y": 1, "w": 6, "h": 4}
        assert positions[second["id"]] == second["position"]

    def test_unknown_widget_rejected_before_write(self, client, admin_user, dashboard, add_widget, revenue_kpi):
        first = add_widget({"type": "number", "kpiId": revenue_kpi["id"]})

        response = client.patch(
            f"/api/dashboards/{dashboard['id']}/layout",
            json={
                "widgets": [
                    {"id": first["id"], "position": {"x": 9, "y": 9, "w": 1, "h": 1}},
                    {"id": str(uuid.uuid4()), "position": {"x": 0, "y": 0, "w": 1, "h": 1}},
                ]
            },
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        board = client.get(f"/api/dashboards/{dashboard['id']}", headers=admin_user["headers"]).json()
        assert board["widgets"][0]["position"] == first["position"]

    def test_viewer_cannot_save_layout(self, client, admin_user, dashboard, viewer_user):
        client.post(
            f"/api/dashboards/{dashboard['id']}/access",
            json={"userId": viewer_user["id"]},
            headers=admin_user["headers"],
        )

        response = client.patch(
            f"/api/dashboards/{dashboard['id']}/layout",
            json={"widgets": []},
            headers=viewer_user["headers"],
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestWidgetHistory:
    def test_stat_widget_view_includes_comparison(self, client, admin_user, dashboard, add_widget, revenue_kpi):
        widget = add_widget({"type": "stat", "kpiId": revenue_kpi["id"], "config": {"period": "7d"}})

        assert widget["view"]["kind"] == "stat"
        assert widget["view"]["value"] == 11000
        assert widget["view"]["formatted"] == "11.0K"

    def test_line_widget_points(self, client, admin_user, dashboard, add_widget, revenue_kpi):
        widget = add_widget({"type": "line", "kpiId": revenue_kpi["id"]})

        response = client.get(
            f"/api/dashboards/{dashboard['id']}/widgets/{widget['id']}/view",
            params={"period": "24h"},
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_200_OK
        view = response.json()["view"]
        assert view["kind"] == "chart"
        assert view["chartType"] == "line"
        assert view["interval"] == "hourly"
        assert view["points"][-1]["value"] == 11000
        assert view["targetLine"] == 10000

    def test_widget_history(self, client, admin_user, dashboard, add_widget, revenue_kpi):
        widget = add_widget({"type": "bar", "kpiId": revenue_kpi["id"], "config": {"period": "90d"}})

        response = client.get(
            f"/api/dashboards/{dashboard['id']}/widgets/{widget['id']}/history",
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["period"] == "90d"
        assert data["interval"] == "weekly"
        assert data["kpiId"] == revenue_kpi["id"]

    def test_image_widget_has_no_history(self, client, admin_user, dashboard, add_widget):
        widget = add_widget({"type": "image", "config": {"imageUrl": "https://example.com/a.png"}})

        response = client.get(
            f"/api/dashboards/{dashboard['id']}/widgets/{widget['id']}/history",
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
