"""Security middleware for the Checkin API."""

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Callable


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "img-src 'self' data: https:; "
            "frame-ancestors 'none'; "
            "base-uri 'self'"
        )

        # Dashboards and share links always reflect the latest data
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"
            response.headers["Pragma"] = "no-cache"

        return response


class RequestValidationMiddleware(BaseHTTPMiddleware):
    """Reject oversized bodies and unexpected content types."""

    # Bulk imports are chunked client-side, 2MB is plenty per request
    MAX_BODY_SIZE = 2 * 1024 * 1024

    ALLOWED_CONTENT_TYPES = (
        "application/json",
        "application/x-www-form-urlencoded",
    )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.MAX_BODY_SIZE:
            return Response(
                content='{"detail": "Request body too large", "error_code": "PAYLOAD_TOO_LARGE"}',
                status_code=413,
                media_type="application/json",
            )

        if request.method in ("POST", "PUT", "PATCH"):
            content_type = request.headers.get("content-type", "")
            if content_type and not any(t in content_type for t in self.ALLOWED_CONTENT_TYPES):
                return Response(
                    content='{"detail": "Unsupported content type", "error_code": "UNSUPPORTED_MEDIA_TYPE"}',
                    status_code=415,
                    media_type="application/json",
                )

        return await call_next(request)
