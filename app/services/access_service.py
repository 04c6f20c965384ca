"""
Access control for dashboards and KPIs.

Permissions are derived for each request from the requesting user, the
resource owner and the resource's access entries. They are never stored on
the resource itself.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Iterable, Optional, Union
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, Query

from app.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.models import (
    AccessPermission,
    Dashboard,
    DashboardAccess,
    Kpi,
    KpiAccess,
    User,
    UserRole,
)
from app.models.user import ROLE_LEVELS

logger = logging.getLogger(__name__)

Resource = Union[Dashboard, Kpi]
AccessEntry = Union[DashboardAccess, KpiAccess]

# Access levels checked by require()
VIEW = "view"
EDIT = "edit"
MANAGE = "manage"
SHARE = "share"


@dataclass(frozen=True)
class AccessFlags:
    """What one user may do with one resource."""
    is_owner: bool
    can_view: bool
    can_edit: bool
    can_manage: bool
    can_share: bool
    permission: Optional[str]  # Stored entry permission, None for owner/admin/no entry

    def allows(self, level: str) -> bool:
        return {
            VIEW: self.can_view,
            EDIT: self.can_edit,
            MANAGE: self.can_manage,
            SHARE: self.can_share,
        }[level]

    def to_dict(self) -> dict:
        return asdict(self)


def has_minimum_role(user: User, required: UserRole) -> bool:
    """Ordinal role check: VIEWER(1) < EDITOR(2) < ADMIN(3)."""
    return user.role_level >= ROLE_LEVELS[required]


def derive_access(user: User, owner_id: UUID, entries: Iterable[AccessEntry]) -> AccessFlags:
    """
    Compute access flags for a user on a resource.

    - owner and ADMIN users can manage (grant/revoke, delete) and share
    - an EDIT entry allows editing, any entry allows viewing
    """
    is_owner = user.id == owner_id
    can_manage = is_owner or user.is_admin

    permission = None
    for entry in entries:
        if entry.user_id == user.id:
            permission = entry.permission
            break

    can_edit = can_manage or permission == AccessPermission.EDIT.value
    can_view = can_edit or permission is not None

    return AccessFlags(
        is_owner=is_owner,
        can_view=can_view,
        can_edit=can_edit,
        can_manage=can_manage,
        can_share=can_manage,
        permission=permission,
    )


class AccessService:
    """Service for resource permissions and access entry management."""

    # resource kind -> (entry model, entry foreign key attribute, resource model)
    RESOURCES = {
        "dashboard": (DashboardAccess, "dashboard_id", Dashboard),
        "kpi": (KpiAccess, "kpi_id", Kpi),
    }

    @staticmethod
    def kind_of(resource: Resource) -> str:
        return "dashboard" if isinstance(resource, Dashboard) else "kpi"

    @staticmethod
    def flags_for(user: User, resource: Resource) -> AccessFlags:
        """Derive flags from the resource's loaded access entries."""
        return derive_access(user, resource.owner_id, resource.access_entries)

    @staticmethod
    def require_role(user: User, required: UserRole) -> None:
        """Raise PermissionDeniedError (with both roles) if the user's role is too low."""
        if not has_minimum_role(user, required):
            raise PermissionDeniedError(
                detail=f"This action requires the {required.value} role",
                required_role=required.value,
                current_role=user.role,
            )

    @staticmethod
    def require(user: User, resource: Resource, level: str) -> AccessFlags:
        """Return the user's flags on the resource, or raise if ``level`` is not allowed."""
        flags = AccessService.flags_for(user, resource)
        if not flags.allows(level):
            kind = AccessService.kind_of(resource)
            logger.info(f"Denied {level} on {kind} {resource.id} for user {user.id}")
            raise PermissionDeniedError(detail=f"You do not have {level} access to this {kind}")
        return flags

    @staticmethod
    def accessible_query(db: Session, user: User, kind: str) -> Query:
        """Query of resources of ``kind`` the user can view (admins see everything)."""
        entry_model, fk_attr, model = AccessService.RESOURCES[kind]
        query = db.query(model)
        if user.is_admin:
            return query

        granted_ids = select(getattr(entry_model, fk_attr)).where(entry_model.user_id == user.id)
        return query.filter(or_(model.owner_id == user.id, model.id.in_(granted_ids)))

    # --- Access entry management ---

    @staticmethod
    def list_access(db: Session, resource: Resource) -> dict:
        """Owner (shown separately) and the non-owner access list."""
        owner = db.query(User).filter(User.id == resource.owner_id).first()
        entries = sorted(resource.access_entries, key=lambda e: e.granted_at)
        return {
            "owner": owner,
            "access_list": [
                {
                    "user_id": entry.user_id,
                    "email": entry.user.email,
                    "name": entry.user.name,
                    "permission": entry.permission,
                    "granted_at": entry.granted_at,
                }
                for entry in entries
            ],
        }

    @staticmethod
    def _find_entry(resource: Resource, user_id: UUID) -> Optional[AccessEntry]:
        for entry in resource.access_entries:
            if entry.user_id == user_id:
                return entry
        return None

    @staticmethod
    def grant_access(
        db: Session,
        resource: Resource,
        granted_by: User,
        permission: AccessPermission,
        user_id: Optional[UUID] = None,
        email: Optional[str] = None,
    ) -> AccessEntry:
        """
        Grant VIEW or EDIT to a user identified by id or email.

        Granting to a user who already has an entry updates that entry.
        Raises NotFoundError for unknown users and ConflictError for the owner.
        """
        if user_id is None and not email:
            raise ValidationError("Either userId or email is required")

        query = db.query(User)
        if user_id is not None:
            target = query.filter(User.id == user_id).first()
        else:
            target = query.filter(User.email == email.strip().lower()).first()
        if target is None:
            raise NotFoundError("User")

        if target.id == resource.owner_id:
            raise ConflictError("The owner already has full access to this resource")

        entry = AccessService._find_entry(resource, target.id)
        if entry is None:
            entry_model, fk_attr, _ = AccessService.RESOURCES[AccessService.kind_of(resource)]
            entry = entry_model(user_id=target.id, granted_by=granted_by.id)
            setattr(entry, fk_attr, resource.id)
            resource.access_entries.append(entry)

        entry.permission = permission.value
        entry.granted_at = datetime.utcnow()
        db.commit()
        db.refresh(entry)
        logger.info(
            f"Granted {permission.value} on {AccessService.kind_of(resource)} {resource.id} to user {target.id}"
        )
        return entry

    @staticmethod
    def update_access(
        db: Session,
        resource: Resource,
        user_id: UUID,
        permission: AccessPermission,
    ) -> AccessEntry:
        """Change an existing entry's permission. Raises NotFoundError without one."""
        entry = AccessService._find_entry(resource, user_id)
        if entry is None:
            raise NotFoundError("Access entry")

        entry.permission = permission.value
        db.commit()
        db.refresh(entry)
        return entry

    @staticmethod
    def revoke_access(db: Session, resource: Resource, user_id: UUID) -> None:
        """Remove a user's entry. Revoking an absent entry succeeds."""
        entry = AccessService._find_entry(resource, user_id)
        if entry is None:
            return

        resource.access_entries.remove(entry)
        db.delete(entry)
        db.commit()
        logger.info(f"Revoked access on {AccessService.kind_of(resource)} {resource.id} for user {user_id}")
