"""
Share links: signed tokens that give anonymous, read-only access to one
dashboard or KPI.
"""
import base64
import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import NotFoundError, PermissionDeniedError, ShareLinkStateError, ValidationError
from app.core.sanitization import sanitize_optional_name
from app.models import Dashboard, Kpi, ShareLink, ShareResourceType, User, UserRole
from app.schemas.sharing import ShareLinkCreateRequest, ShareLinkUpdateRequest
from app.services.access_service import AccessService, SHARE
from app.services.history_service import HistoryService
from app.services.kpi_service import KPIService

logger = logging.getLogger(__name__)

SIGNATURE_LENGTH = 16

EXPIRATION_PRESETS = [
    {"value": "1h", "label": "1 hour"},
    {"value": "24h", "label": "24 hours"},
    {"value": "7d", "label": "7 days"},
    {"value": "30d", "label": "30 days"},
    {"value": "never", "label": "Never expires"},
]

PRESET_DELTAS = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}

# Keys withheld from public responses when a link hides targets
TARGET_KEYS = ("targetValue", "targetDirection", "targetPeriod", "progress", "onTrack")


class LinkState(str, Enum):
    ACCESSIBLE = "accessible"
    INACTIVE = "inactive"
    EXPIRED = "expired"


def _sign(random_part: str) -> str:
    digest = hmac.new(
        settings.share_link_secret.encode(), random_part.encode(), hashlib.sha256
    ).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode()[:SIGNATURE_LENGTH]


def generate_share_token() -> str:
    """<32 random bytes, base64url>.<first 16 chars of the HMAC-SHA256 signature>"""
    random_part = secrets.token_urlsafe(32)
    return f"{random_part}.{_sign(random_part)}"


def verify_share_token(token: str) -> bool:
    """Check a token's signature with a timing-safe comparison."""
    parts = token.split(".")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return False
    random_part, signature = parts
    return hmac.compare_digest(signature.encode(), _sign(random_part).encode())


def calculate_expiration(preset: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Expiry for a preset. "never" gives None."""
    if preset == "never":
        return None
    if preset not in PRESET_DELTAS:
        valid = ", ".join(p["value"] for p in EXPIRATION_PRESETS)
        raise ValidationError(f"Invalid expiration '{preset}'. Use one of: {valid}")
    return (now or datetime.utcnow()) + PRESET_DELTAS[preset]


def link_state(link: ShareLink, now: Optional[datetime] = None) -> LinkState:
    """Inactive wins over expired. A link expiring exactly now is expired."""
    if not link.active:
        return LinkState.INACTIVE
    if link.expires_at is not None and link.expires_at <= (now or datetime.utcnow()):
        return LinkState.EXPIRED
    return LinkState.ACCESSIBLE


def share_url(token: str) -> str:
    return f"{settings.share_link_base_url}/share/{token}"


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class SharingService:
    """Service for share link management and public access."""

    @staticmethod
    def _resource(db: Session, resource_type: str, resource_id: UUID):
        model = Dashboard if resource_type == ShareResourceType.DASHBOARD.value else Kpi
        resource = db.query(model).filter(model.id == resource_id).first()
        if not resource:
            raise NotFoundError("Dashboard" if model is Dashboard else "KPI")
        return resource

    @staticmethod
    def to_response(link: ShareLink) -> dict:
        resource = link.dashboard if link.resource_type == ShareResourceType.DASHBOARD.value else link.kpi
        return {
            "id": link.id,
            "token": link.token,
            "url": share_url(link.token),
            "name": link.name,
            "resource_type": link.resource_type,
            "resource_id": link.resource_id,
            "resource_name": resource.name if resource else None,
            "show_target": link.show_target,
            "expires_at": link.expires_at,
            "active": link.active,
            "state": link_state(link).value,
            "access_count": link.access_count,
            "last_accessed_at": link.last_accessed_at,
            "created_at": link.created_at,
        }

    # --- Management ---

    @staticmethod
    def create_share_link(db: Session, user: User, data: ShareLinkCreateRequest) -> ShareLink:
        """Mint a link. Needs the EDITOR role and share access to the resource."""
        AccessService.require_role(user, UserRole.EDITOR)
        resource_type = data.resource_type.value
        resource = SharingService._resource(db, resource_type, data.resource_id)
        AccessService.require(user, resource, SHARE)

        link = ShareLink(
            token=generate_share_token(),
            name=sanitize_optional_name(data.name),
            resource_type=resource_type,
            created_by=user.id,
            show_target=data.show_target,
            expires_at=calculate_expiration(data.expires_in),
            active=True,
            access_count=0,
        )
        if resource_type == ShareResourceType.DASHBOARD.value:
            link.dashboard_id = resource.id
        else:
            link.kpi_id = resource.id

        db.add(link)
        db.commit()
        db.refresh(link)
        logger.info(f"User {user.id} created share link {link.id} for {resource_type} {resource.id}")
        return link

    @staticmethod
    def list_share_links(
        db: Session,
        user: User,
        resource_type: Optional[str] = None,
        resource_id: Optional[UUID] = None,
    ) -> list[ShareLink]:
        """The user's own links, newest first."""
        query = db.query(ShareLink).filter(ShareLink.created_by == user.id)
        if resource_type:
            query = query.filter(ShareLink.resource_type == resource_type)
        if resource_id:
            query = query.filter(
                (ShareLink.dashboard_id == resource_id) | (ShareLink.kpi_id == resource_id)
            )
        return query.order_by(ShareLink.created_at.desc()).all()

    @staticmethod
    def get_share_link(db: Session, user: User, link_id: UUID) -> ShareLink:
        """A link the user created (admins may see any)."""
        link = db.query(ShareLink).filter(ShareLink.id == link_id).first()
        if not link:
            raise NotFoundError("Share link")
        if link.created_by != user.id and not user.is_admin:
            raise PermissionDeniedError("Only the creator of a share link can manage it")
        return link

    @staticmethod
    def update_share_link(db: Session, link: ShareLink, data: ShareLinkUpdateRequest) -> ShareLink:
        fields_set = data.model_fields_set
        if "name" in fields_set:
            link.name = sanitize_optional_name(data.name)
        if data.active is not None:
            link.active = data.active
        if data.show_target is not None:
            link.show_target = data.show_target
        if data.expires_in is not None:
            link.expires_at = calculate_expiration(data.expires_in)
        elif "expires_at" in fields_set:
            link.expires_at = _naive_utc(data.expires_at)

        db.commit()
        db.refresh(link)
        return link

    @staticmethod
    def delete_share_link(db: Session, link: ShareLink) -> None:
        db.delete(link)
        db.commit()
        logger.info(f"Deleted share link {link.id}")

    # --- Public access ---

    @staticmethod
    def _strip_targets(data: dict, show_target: bool) -> dict:
        if not show_target:
            for key in TARGET_KEYS:
                data.pop(key, None)
        return data

    @staticmethod
    def _kpi_projection(db: Session, kpi: Kpi, show_target: bool, with_history: bool) -> dict:
        evaluation = KPIService.evaluate(db, kpi)
        data = {
            "id": str(kpi.id),
            "name": kpi.name,
            "description": kpi.description,
            "currentValue": evaluation.current_value,
            "calculationError": evaluation.calculation_error,
            "targetValue": kpi.target_value,
            "targetDirection": kpi.target_direction,
            "targetPeriod": kpi.target_period,
            "progress": evaluation.progress,
            "onTrack": evaluation.on_track,
        }
        if with_history:
            history = HistoryService.get_kpi_history(db, kpi, settings.DEFAULT_HISTORY_PERIOD)
            data["history"] = [
                {"timestamp": point["timestamp"].isoformat(), "value": point["value"]}
                for point in history["data"]
            ]
        return SharingService._strip_targets(data, show_target)

    @staticmethod
    def _dashboard_projection(db: Session, dashboard: Dashboard, show_target: bool) -> dict:
        widgets = []
        for widget in dashboard.widgets:
            config = dict(widget.config or {})
            if not show_target:
                config["showTarget"] = False
            widgets.append({
                "id": str(widget.id),
                "type": widget.type,
                "position": widget.position,
                "config": config,
                "kpi": (
                    SharingService._kpi_projection(db, widget.kpi, show_target, with_history=False)
                    if widget.kpi else None
                ),
            })
        return {
            "id": str(dashboard.id),
            "name": dashboard.name,
            "layout": dashboard.layout or {},
            "widgets": widgets,
        }

    @staticmethod
    def access_shared(db: Session, token: str, now: Optional[datetime] = None) -> dict:
        """
        Resolve a public token to a read-only projection of its resource.

        Raises ShareLinkStateError (not_found, expired or inactive). Only a
        successful access counts towards access_count.
        """
        now = now or datetime.utcnow()
        if not verify_share_token(token):
            logger.info("Rejected share token with invalid signature")
            raise ShareLinkStateError("not_found")

        link = db.query(ShareLink).filter(ShareLink.token == token).first()
        if not link:
            raise ShareLinkStateError("not_found")

        state = link_state(link, now)
        if state != LinkState.ACCESSIBLE:
            logger.info(f"Denied access to share link {link.id}: {state.value}")
            raise ShareLinkStateError(state.value)

        if link.resource_type == ShareResourceType.DASHBOARD.value and link.dashboard:
            payload = {
                "type": link.resource_type,
                "dashboard": SharingService._dashboard_projection(db, link.dashboard, link.show_target),
            }
        elif link.resource_type == ShareResourceType.KPI.value and link.kpi:
            payload = {
                "type": link.resource_type,
                "kpi": SharingService._kpi_projection(db, link.kpi, link.show_target, with_history=True),
            }
        else:
            raise ShareLinkStateError("not_found")

        link.access_count = (link.access_count or 0) + 1
        link.last_accessed_at = now
        db.commit()

        payload["showTarget"] = link.show_target
        payload["expiresAt"] = link.expires_at.isoformat() if link.expires_at else None
        return payload
