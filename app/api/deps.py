from typing import Callable, Optional
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import AuthenticationError
from app.core.security import verify_token
from app.models import User, UserRole
from app.services.access_service import AccessService


# Bearer header is optional: browsers authenticate with the auth cookie
security = HTTPBearer(auto_error=False)


def get_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """Token from the Authorization header, falling back to the auth cookie."""
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.AUTH_COOKIE_NAME)


def get_current_user(
    request: Request,
    token: Optional[str] = Depends(get_token),
    db: Session = Depends(get_db),
) -> User:
    """
    Dependency to get the current authenticated user from the JWT.
    Raises AuthenticationError (401) if the token is missing or invalid or the user is gone.
    """
    if not token:
        raise AuthenticationError()

    payload = verify_token(token)
    if payload is None or payload.get("sub") is None:
        raise AuthenticationError("Could not validate credentials")

    try:
        user_id = UUID(payload["sub"])
    except ValueError:
        raise AuthenticationError("Could not validate credentials")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise AuthenticationError("Could not validate credentials")

    # Rate limiting keys on the user
    request.state.user = user
    return user


def require_role(role: UserRole) -> Callable[..., User]:
    """Dependency factory: the current user must hold at least ``role``."""

    def dependency(current_user: User = Depends(get_current_user)) -> User:
        AccessService.require_role(current_user, role)
        return current_user

    return dependency


require_admin = require_role(UserRole.ADMIN)
require_editor = require_role(UserRole.EDITOR)


__all__ = ["get_db", "get_current_user", "require_role", "require_admin", "require_editor"]
