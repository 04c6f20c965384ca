import logging
import time
from typing import Any, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import ExternalFetchError
from app.services.connectors.base import (
    BaseConnector,
    ConnectionResult,
    FetchResult,
    FieldSchema,
    fields_from_row,
)

logger = logging.getLogger(__name__)

USER_AGENT = "Checkin-KPI/1.0"
DEFAULT_FETCH_LIMIT = 100
DISCOVERY_SAMPLE_SIZE = 5

# Keys that commonly hold the row list in API responses
ARRAY_KEYS = ("data", "items", "results", "records", "rows", "entries")


def normalize_payload(payload: Any, limit: Optional[int] = None) -> list[dict]:
    """A list, a list under a well-known key, or a single object wrapped as one row."""
    if isinstance(payload, list):
        rows = payload
    elif isinstance(payload, dict):
        rows = [payload]
        for key in ARRAY_KEYS:
            if isinstance(payload.get(key), list):
                rows = payload[key]
                break
    else:
        return []

    rows = [row for row in rows if isinstance(row, dict)]
    return rows[:limit] if limit else rows


class ApiConnector(BaseConnector):
    """Connector for REST APIs (none, API key, bearer or basic auth)."""

    # Replaced in tests with an httpx.MockTransport
    transport: Optional[httpx.BaseTransport] = None

    def _headers(self) -> dict:
        headers = dict(self.config.get("headers") or {})
        headers.setdefault("User-Agent", USER_AGENT)

        auth_type = self.config.get("authType", "none")
        api_key = self.config.get("apiKey")
        if auth_type == "apiKey" and api_key:
            headers[self.config.get("authHeader") or "X-API-Key"] = api_key
        elif auth_type == "bearer" and api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    def _auth(self) -> Optional[httpx.BasicAuth]:
        username = self.config.get("username")
        password = self.config.get("password")
        if self.config.get("authType") == "basic" and username and password:
            return httpx.BasicAuth(username, password)
        return None

    def _request(self) -> httpx.Response:
        url = self.config.get("url")
        if not url:
            raise ExternalFetchError("URL is required")

        method = (self.config.get("method") or "GET").upper()
        headers = self._headers()
        content = None
        body = self.config.get("body")
        if body and method != "GET":
            content = body
            headers.setdefault("Content-Type", "application/json")

        with httpx.Client(
            timeout=settings.EXTERNAL_REQUEST_TIMEOUT,
            transport=self.transport,
            follow_redirects=True,
        ) as client:
            return client.request(method, url, headers=headers, content=content, auth=self._auth())

    def test_connection(self) -> ConnectionResult:
        started = time.monotonic()
        try:
            response = self._request()
        except (httpx.HTTPError, ExternalFetchError) as e:
            detail = e.detail if isinstance(e, ExternalFetchError) else str(e)
            logger.warning(f"Connection test failed for integration {self.integration.id}: {detail}")
            return ConnectionResult(
                success=False,
                message="Connection failed",
                response_time_ms=int((time.monotonic() - started) * 1000),
                error=detail,
            )

        elapsed = int((time.monotonic() - started) * 1000)
        if response.is_success:
            return ConnectionResult(
                success=True,
                message=f"Connection successful ({response.status_code} {response.reason_phrase})",
                response_time_ms=elapsed,
            )
        return ConnectionResult(
            success=False,
            message=f"API returned error: {response.status_code} {response.reason_phrase}",
            response_time_ms=elapsed,
            error=response.text[:500],
        )

    def fetch_data(self, limit: Optional[int] = DEFAULT_FETCH_LIMIT) -> FetchResult:
        try:
            response = self._request()
        except httpx.HTTPError as e:
            raise ExternalFetchError(f"Request failed: {e}")

        if not response.is_success:
            raise ExternalFetchError(f"API error: {response.status_code} {response.reason_phrase}")

        try:
            payload = response.json()
        except ValueError:
            raise ExternalFetchError("API response is not valid JSON")

        return FetchResult(rows=normalize_payload(payload, limit))

    def discover_fields(self) -> list[FieldSchema]:
        rows = self.fetch_data(limit=DISCOVERY_SAMPLE_SIZE).rows
        if not rows:
            return []
        return fields_from_row(rows[0])
