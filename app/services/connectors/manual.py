from typing import Optional

from app.services.connectors.base import BaseConnector, ConnectionResult, FetchResult, FieldSchema


class ManualConnector(BaseConnector):
    """Values are entered by users. Fields come from the config."""

    def test_connection(self) -> ConnectionResult:
        return ConnectionResult(success=True, message="Manual integration ready for data entry", response_time_ms=0)

    def fetch_data(self, limit: Optional[int] = None) -> FetchResult:
        return FetchResult()

    def discover_fields(self) -> list[FieldSchema]:
        return self.declared_fields()
