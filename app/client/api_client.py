"""HTTP client for the Checkin API."""
import logging
from typing import Any, Callable, Optional

import httpx

logger = logging.getLogger(__name__)

BULK_BATCH_SIZE = 50
DEFAULT_TIMEOUT = 30.0


class ApiError(Exception):
    """
    An error response from the API.

    Branch on ``error_code`` (and ``reason`` for share links), never on ``detail``.
    """

    def __init__(
        self,
        status_code: int,
        error_code: Optional[str],
        detail: Any,
        reason: Optional[str] = None,
        body: Optional[dict] = None,
    ):
        super().__init__(f"{status_code} {error_code}: {detail}")
        self.status_code = status_code
        self.error_code = error_code
        self.detail = detail
        self.reason = reason
        self.body = body or {}

    @property
    def required_role(self) -> Optional[str]:
        return self.body.get("required_role")

    @property
    def current_role(self) -> Optional[str]:
        return self.body.get("current_role")

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiError":
        try:
            body = response.json()
        except ValueError:
            body = {"detail": response.text or response.reason_phrase}
        if not isinstance(body, dict):
            body = {"detail": body}
        return cls(
            status_code=response.status_code,
            error_code=body.get("error_code"),
            detail=body.get("detail"),
            reason=body.get("reason"),
            body=body,
        )


class CheckinClient:
    """
    Typed wrapper over the REST API.

    A 401 clears the stored token and fires ``on_unauthorized`` before the
    ApiError is raised.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        on_unauthorized: Optional[Callable[[ApiError], None]] = None,
        client: Optional[httpx.Client] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.token = token
        self.on_unauthorized = on_unauthorized
        self._client = client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "CheckinClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # --- Transport ---

    def _headers(self) -> dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> Any:
        merged = self._headers()
        if headers:
            merged.update(headers)
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        response = self._client.request(method, path, json=json, params=params or None, headers=merged)
        if response.status_code >= 400:
            error = ApiError.from_response(response)
            if response.status_code == 401:
                self.token = None
                self._client.cookies.clear()
                logger.info("Session rejected by the API, token cleared")
                if self.on_unauthorized is not None:
                    self.on_unauthorized(error)
            raise error

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # --- Auth ---

    def register(self, email: str, password: str, name: Optional[str] = None) -> dict:
        data = self.request("POST", "/auth/register", json={"email": email, "password": password, "name": name})
        self.token = data["token"]
        return data

    def login(self, email: str, password: str) -> dict:
        data = self.request("POST", "/auth/login", json={"email": email, "password": password})
        self.token = data["token"]
        return data

    def logout(self) -> None:
        self.request("POST", "/auth/logout")
        self.token = None

    def me(self) -> dict:
        return self.request("GET", "/auth/me")

    # --- Dashboards ---

    def list_dashboards(self) -> list[dict]:
        return self.request("GET", "/dashboards")["dashboards"]

    def get_dashboard(self, dashboard_id: str) -> dict:
        return self.request("GET", f"/dashboards/{dashboard_id}")

    def create_dashboard(self, name: str, layout: Optional[dict] = None) -> dict:
        return self.request("POST", "/dashboards", json={"name": name, "layout": layout})

    def update_dashboard(self, dashboard_id: str, **changes) -> dict:
        return self.request("PATCH", f"/dashboards/{dashboard_id}", json=changes)

    def delete_dashboard(self, dashboard_id: str) -> None:
        self.request("DELETE", f"/dashboards/{dashboard_id}")

    def add_widget(
        self,
        dashboard_id: str,
        widget_type: str,
        kpi_id: Optional[str] = None,
        config: Optional[dict] = None,
        position: Optional[dict] = None,
    ) -> dict:
        payload = {"type": widget_type, "kpiId": kpi_id, "config": config or {}, "position": position}
        return self.request("POST", f"/dashboards/{dashboard_id}/widgets", json=payload)

    def update_widget(self, dashboard_id: str, widget_id: str, **changes) -> dict:
        return self.request("PATCH", f"/dashboards/{dashboard_id}/widgets/{widget_id}", json=changes)

    def delete_widget(self, dashboard_id: str, widget_id: str) -> None:
        self.request("DELETE", f"/dashboards/{dashboard_id}/widgets/{widget_id}")

    def update_layout(self, dashboard_id: str, widgets: list[dict], layout: Optional[dict] = None) -> dict:
        payload: dict[str, Any] = {"widgets": widgets}
        if layout is not None:
            payload["layout"] = layout
        return self.request("PATCH", f"/dashboards/{dashboard_id}/layout", json=payload)

    def widget_history(
        self, dashboard_id: str, widget_id: str, period: Optional[str] = None, interval: Optional[str] = None
    ) -> dict:
        return self.request(
            "GET",
            f"/dashboards/{dashboard_id}/widgets/{widget_id}/history",
            params={"period": period, "interval": interval},
        )

    def widget_view(self, dashboard_id: str, widget_id: str, period: Optional[str] = None) -> dict:
        return self.request(
            "GET", f"/dashboards/{dashboard_id}/widgets/{widget_id}/view", params={"period": period}
        )

    # --- KPIs ---

    def list_kpis(self) -> list[dict]:
        return self.request("GET", "/kpis")["kpis"]

    def get_kpi(self, kpi_id: str) -> dict:
        return self.request("GET", f"/kpis/{kpi_id}")

    def create_kpi(self, name: str, formula: str, sources: list[dict], **fields) -> dict:
        return self.request("POST", "/kpis", json={"name": name, "formula": formula, "sources": sources, **fields})

    def update_kpi(self, kpi_id: str, **changes) -> dict:
        return self.request("PATCH", f"/kpis/{kpi_id}", json=changes)

    def delete_kpi(self, kpi_id: str) -> None:
        self.request("DELETE", f"/kpis/{kpi_id}")

    def validate_formula(self, formula: str, aliases: Optional[list[str]] = None) -> dict:
        return self.request("POST", "/kpis/validate-formula", json={"formula": formula, "aliases": aliases})

    def recalculate_kpi(self, kpi_id: str) -> dict:
        return self.request("POST", f"/kpis/{kpi_id}/recalculate")

    def kpi_history(self, kpi_id: str, period: Optional[str] = None, interval: Optional[str] = None) -> dict:
        return self.request("GET", f"/kpis/{kpi_id}/history", params={"period": period, "interval": interval})

    # --- Access (resource_kind is "dashboards" or "kpis") ---

    def list_access(self, resource_kind: str, resource_id: str) -> dict:
        return self.request("GET", f"/{resource_kind}/{resource_id}/access")

    def grant_access(
        self,
        resource_kind: str,
        resource_id: str,
        permission: str = "VIEW",
        user_id: Optional[str] = None,
        email: Optional[str] = None,
    ) -> dict:
        payload = {"userId": user_id, "email": email, "permission": permission}
        return self.request("POST", f"/{resource_kind}/{resource_id}/access", json=payload)

    def revoke_access(self, resource_kind: str, resource_id: str, user_id: str) -> dict:
        return self.request("DELETE", f"/{resource_kind}/{resource_id}/access/{user_id}")

    # --- Sharing ---

    def create_share_link(
        self,
        resource_type: str,
        resource_id: str,
        expires_in: str = "never",
        show_target: bool = True,
        name: Optional[str] = None,
    ) -> dict:
        payload = {
            "resourceType": resource_type,
            "resourceId": resource_id,
            "expiresIn": expires_in,
            "showTarget": show_target,
            "name": name,
        }
        return self.request("POST", "/sharing", json=payload)

    def list_share_links(self) -> list[dict]:
        return self.request("GET", "/sharing")["shareLinks"]

    def update_share_link(self, link_id: str, **changes) -> dict:
        return self.request("PATCH", f"/sharing/{link_id}", json=changes)

    def delete_share_link(self, link_id: str) -> None:
        self.request("DELETE", f"/sharing/{link_id}")

    def get_shared(self, token: str) -> dict:
        """Public view of a share link. Raises ApiError with reason not_found, expired or inactive."""
        return self.request("GET", f"/shared/{token}")

    # --- Integrations ---

    def list_integrations(self) -> list[dict]:
        return self.request("GET", "/integrations")["integrations"]

    def create_integration(self, name: str, integration_type: str, config: Optional[dict] = None, **fields) -> dict:
        payload = {"name": name, "type": integration_type, "config": config or {}, **fields}
        return self.request("POST", "/integrations", json=payload)

    def sync_integration(self, integration_id: str) -> dict:
        return self.request("POST", f"/integrations/{integration_id}/sync")

    def submit_values(self, integration_id: str, values: list[dict]) -> dict:
        return self.request("POST", f"/integrations/{integration_id}/data", json={"values": values})

    def bulk_import(self, integration_id: str, rows: list[dict], batch_size: int = BULK_BATCH_SIZE) -> dict:
        """
        Import rows in sequential chunks of ``batch_size``.

        Each row is ``{"timestamp": iso | None, "values": {field: value}}``.
        Each error carries the offset of the chunk it came from.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        summary: dict[str, Any] = {"recordsCount": 0, "kpisRecalculated": 0, "errors": [], "batches": 0}
        for offset in range(0, len(rows), batch_size):
            chunk = rows[offset:offset + batch_size]
            result = self.request("POST", f"/integrations/{integration_id}/data/bulk", json={"rows": chunk})
            summary["recordsCount"] += result["recordsCount"]
            summary["kpisRecalculated"] += result["kpisRecalculated"]
            summary["errors"].extend(
                {"offset": offset, "error": error} for error in result.get("errors", [])
            )
            summary["batches"] += 1
        return summary
