"""Rate limiting configuration using slowapi."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from app.core.config import settings


def get_user_identifier(request: Request) -> str:
    """
    Get identifier for rate limiting.
    Uses user ID if authenticated, otherwise IP address.
    """
    # Set by the get_current_user dependency
    user = getattr(request.state, "user", None)
    if user and hasattr(user, "id"):
        return f"user:{user.id}"

    return get_remote_address(request)


def get_ip_address(request: Request) -> str:
    """Get IP address for rate limiting public routes."""
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_user_identifier,
    default_limits=["1000/minute"],
    enabled=settings.RATE_LIMIT_ENABLED,
)

# Public routes (share links, webhooks, login) are limited by IP
public_limiter = Limiter(
    key_func=get_ip_address,
    default_limits=["100/minute"],
    enabled=settings.RATE_LIMIT_ENABLED,
)
