from typing import Optional

from app.services.connectors.base import BaseConnector, ConnectionResult, FetchResult, FieldSchema


class WebhookConnector(BaseConnector):
    """Push only: the source POSTs rows to /api/webhooks/{integration_id}."""

    def test_connection(self) -> ConnectionResult:
        if not self.config.get("webhookSecret"):
            return ConnectionResult(
                success=False,
                message="Webhook secret is not configured",
                response_time_ms=0,
                error="missing webhookSecret",
            )
        return ConnectionResult(
            success=True,
            message=f"Webhook ready at /api/webhooks/{self.integration.id}",
            response_time_ms=0,
        )

    def fetch_data(self, limit: Optional[int] = None) -> FetchResult:
        return FetchResult()

    def discover_fields(self) -> list[FieldSchema]:
        return self.declared_fields()
