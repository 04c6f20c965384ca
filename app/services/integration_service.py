import hmac
import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.encryption import decrypt_json, encrypt_json
from app.core.exceptions import (
    AuthenticationError,
    ConflictError,
    ExternalFetchError,
    NotFoundError,
    ValidationError,
)
from app.core.sanitization import sanitize_name, validate_http_url
from app.models import DataField, DataValue, Integration, IntegrationStatus, IntegrationType, User, UserRole
from app.schemas.data_fields import DataFieldCreateRequest
from app.schemas.integrations import (
    BulkSubmitRequest,
    IntegrationCreateRequest,
    IntegrationUpdateRequest,
    ManualValuesRequest,
)
from app.services.access_service import AccessService
from app.services.connectors import ConnectionResult, FetchResult, FieldSchema, get_connector, normalize_payload
from app.services.data_field_service import DataFieldService
from app.services.kpi_service import KPIService
from app.services.sync_service import SyncService, TRIGGER_WEBHOOK

logger = logging.getLogger(__name__)

SECRET_CONFIG_KEYS = ("apiKey", "password", "webhookSecret")
MASK = "********"
AUTH_TYPES = ("none", "apiKey", "bearer", "basic")
PREVIEW_LIMIT = 10


def mask_config(config: dict) -> dict:
    """Copy of a config with secret values replaced by a mask."""
    masked = dict(config)
    for key in SECRET_CONFIG_KEYS:
        if masked.get(key):
            masked[key] = MASK
    return masked


class IntegrationService:
    """CRUD, connection checks and value ingestion for integrations."""

    @staticmethod
    def get_all(db: Session) -> list[Integration]:
        return db.query(Integration).order_by(Integration.created_at.desc()).all()

    @staticmethod
    def get_by_id(db: Session, integration_id: UUID) -> Integration:
        integration = db.query(Integration).filter(Integration.id == integration_id).first()
        if not integration:
            raise NotFoundError("Integration")
        return integration

    @staticmethod
    def to_response(integration: Integration, reveal_secrets: bool = False) -> dict:
        """Integration as returned by the API. Secrets are masked unless revealed once on create."""
        config = decrypt_json(integration.config_encrypted)
        return {
            "id": integration.id,
            "name": integration.name,
            "type": integration.type,
            "status": integration.status,
            "error_message": integration.error_message,
            "config": config if reveal_secrets else mask_config(config),
            "sync_interval": integration.sync_interval,
            "sync_enabled": integration.sync_enabled,
            "retry_count": integration.retry_count,
            "last_sync": integration.last_sync,
            "next_sync_at": integration.next_sync_at,
            "field_count": len(integration.data_fields),
            "webhook_url": (
                f"/api/webhooks/{integration.id}"
                if integration.type == IntegrationType.WEBHOOK.value else None
            ),
            "created_by": integration.created_by,
            "created_at": integration.created_at,
            "updated_at": integration.updated_at,
        }

    @staticmethod
    def validate_config(integration_type: str, config: dict) -> dict:
        """Check the connection config for the integration type and fill defaults."""
        config = dict(config)
        if integration_type == IntegrationType.API.value:
            url = config.get("url")
            if not url or not validate_http_url(url):
                raise ValidationError("API integrations require an http(s) url")
            auth_type = config.setdefault("authType", "none")
            if auth_type not in AUTH_TYPES:
                raise ValidationError(f"Invalid authType '{auth_type}'. Use one of: {', '.join(AUTH_TYPES)}")
            if auth_type == "basic" and not (config.get("username") and config.get("password")):
                raise ValidationError("Basic auth requires username and password")
            if auth_type in ("apiKey", "bearer") and not config.get("apiKey"):
                raise ValidationError(f"{auth_type} auth requires apiKey")
        elif integration_type == IntegrationType.WEBHOOK.value:
            if not config.get("webhookSecret"):
                config["webhookSecret"] = secrets.token_urlsafe(24)
        return config

    @staticmethod
    def create(db: Session, user: User, data: IntegrationCreateRequest) -> Integration:
        """Create an integration with its initial data fields."""
        AccessService.require_role(user, UserRole.EDITOR)

        name = sanitize_name(data.name)
        if not name:
            raise ValidationError("Integration name cannot be empty")

        integration_type = data.type.value
        config = IntegrationService.validate_config(integration_type, data.config)
        pulls = integration_type == IntegrationType.API.value and data.sync_interval

        integration = Integration(
            name=name,
            type=integration_type,
            config_encrypted=encrypt_json(config),
            status=IntegrationStatus.PENDING.value,
            sync_interval=data.sync_interval,
            sync_enabled=data.sync_enabled,
            retry_count=0,
            next_sync_at=datetime.utcnow() if pulls and data.sync_enabled else None,
            created_by=user.id,
        )
        db.add(integration)
        db.commit()
        db.refresh(integration)

        for field in data.fields:
            DataFieldService.create_data_field(
                db,
                DataFieldCreateRequest(
                    integration_id=integration.id,
                    name=field.name,
                    source_field=field.source_field,
                    field_type=field.field_type,
                    transform=field.transform,
                ),
                integration=integration,
            )
        db.refresh(integration)
        logger.info(f"Created {integration_type} integration {integration.id} for user {user.id}")
        return integration

    @staticmethod
    def update(db: Session, integration: Integration, data: IntegrationUpdateRequest) -> Integration:
        if data.name is not None:
            integration.name = sanitize_name(data.name) or integration.name

        if data.config is not None:
            current = decrypt_json(integration.config_encrypted)
            merged = dict(current)
            for key, value in data.config.items():
                if key in SECRET_CONFIG_KEYS and value == MASK:
                    continue
                merged[key] = value
            integration.config_encrypted = encrypt_json(
                IntegrationService.validate_config(integration.type, merged)
            )

        if "sync_interval" in data.model_fields_set:
            integration.sync_interval = data.sync_interval
        if data.sync_enabled is not None:
            integration.sync_enabled = data.sync_enabled
            if data.sync_enabled:
                integration.retry_count = 0

        if integration.sync_enabled and integration.sync_interval and integration.type == IntegrationType.API.value:
            integration.next_sync_at = integration.next_sync_at or datetime.utcnow()
        else:
            integration.next_sync_at = None

        db.commit()
        db.refresh(integration)
        return integration

    @staticmethod
    def delete(db: Session, integration: Integration) -> None:
        """Delete an integration with its fields, values and logs, unless KPIs use its fields."""
        kpis = DataFieldService.dependent_kpis(db, [f.id for f in integration.data_fields])
        if kpis:
            names = ", ".join(k.name for k in kpis)
            raise ConflictError(
                f"Cannot delete integration '{integration.name}': its fields are used by {len(kpis)} KPI(s): {names}"
            )
        db.delete(integration)
        db.commit()
        logger.info(f"Deleted integration {integration.id}")

    # --- Source access ---

    @staticmethod
    def test_connection(integration: Integration) -> ConnectionResult:
        """Raises ExternalFetchError when the source cannot be reached."""
        result = get_connector(integration).test_connection()
        if not result.success:
            detail = f"{result.message}: {result.error}" if result.error else result.message
            raise ExternalFetchError(detail)
        return result

    @staticmethod
    def discover_fields(integration: Integration) -> list[FieldSchema]:
        return get_connector(integration).discover_fields()

    @staticmethod
    def preview(integration: Integration, limit: int = PREVIEW_LIMIT) -> FetchResult:
        return get_connector(integration).fetch_data(limit=limit)

    # --- Pushed values ---

    @staticmethod
    def _require_manual(integration: Integration) -> None:
        if integration.type != IntegrationType.MANUAL.value:
            raise ValidationError("Values can only be entered for MANUAL integrations")

    @staticmethod
    def _field_lookup(integration: Integration) -> dict[str, DataField]:
        lookup: dict[str, DataField] = {}
        for field in integration.data_fields:
            lookup[field.name] = field
            lookup[field.variable_name] = field
            lookup[str(field.id)] = field
        return lookup

    @staticmethod
    def _mark_synced(integration: Integration, when: datetime) -> None:
        integration.status = IntegrationStatus.SYNCED.value
        integration.error_message = None
        if integration.last_sync is None or when > integration.last_sync:
            integration.last_sync = when

    @staticmethod
    def submit_manual_values(db: Session, integration: Integration, data: ManualValuesRequest) -> dict:
        """Store entered values. Every value is checked before any is written."""
        IntegrationService._require_manual(integration)
        fields = {f.id: f for f in integration.data_fields}
        now = datetime.utcnow()

        prepared: list[tuple[DataField, Any, datetime]] = []
        for item in data.values:
            field = fields.get(item.data_field_id)
            if field is None:
                raise ValidationError(f"Data field {item.data_field_id} does not belong to this integration")
            try:
                value = DataFieldService.prepare_value(field, item.value)
            except ValueError as e:
                raise ValidationError(f"{field.name}: {e}")
            if value is None:
                raise ValidationError(f"{field.name}: a value is required")
            prepared.append((field, value, _naive(item.timestamp) or now))

        for field, value, synced_at in prepared:
            db.add(DataValue(data_field_id=field.id, value=value, synced_at=synced_at))
            IntegrationService._mark_synced(integration, synced_at)
        db.flush()

        kpis = KPIService.recalculate_for_fields(db, list({field.id for field, _, _ in prepared}))
        db.commit()
        return {"records_count": len(prepared), "kpis_recalculated": kpis, "errors": []}

    @staticmethod
    def bulk_submit(db: Session, integration: Integration, data: BulkSubmitRequest) -> dict:
        """
        Store timestamped rows. Unknown columns and invalid values are
        reported per row and skipped; the rest of the batch is written.
        """
        IntegrationService._require_manual(integration)
        lookup = IntegrationService._field_lookup(integration)
        now = datetime.utcnow()

        written = 0
        field_ids: set[UUID] = set()
        errors: list[str] = []
        for index, row in enumerate(data.rows, start=1):
            synced_at = _naive(row.timestamp) or now
            for key, raw in row.values.items():
                field = lookup.get(key)
                if field is None:
                    errors.append(f"Row {index}: unknown field '{key}'")
                    continue
                if raw is None or raw == "":
                    continue
                try:
                    value = DataFieldService.prepare_value(field, raw)
                except ValueError as e:
                    errors.append(f"Row {index}, {field.name}: {e}")
                    continue
                db.add(DataValue(data_field_id=field.id, value=value, synced_at=synced_at))
                IntegrationService._mark_synced(integration, synced_at)
                written += 1
                field_ids.add(field.id)
        db.flush()

        kpis = KPIService.recalculate_for_fields(db, list(field_ids))
        db.commit()
        if errors:
            logger.warning(f"Bulk import into integration {integration.id} skipped {len(errors)} value(s)")
        return {"records_count": written, "kpis_recalculated": kpis, "errors": errors}

    @staticmethod
    def receive_webhook(db: Session, integration_id: UUID, secret: Optional[str], payload: Any) -> dict:
        """Store a pushed payload. The secret header is compared timing-safe."""
        integration = db.query(Integration).filter(Integration.id == integration_id).first()
        if not integration or integration.type != IntegrationType.WEBHOOK.value:
            raise NotFoundError("Webhook")

        expected = decrypt_json(integration.config_encrypted).get("webhookSecret") or ""
        if not secret or not expected or not hmac.compare_digest(secret.encode(), expected.encode()):
            logger.warning(f"Rejected webhook for integration {integration.id}: bad secret")
            raise AuthenticationError("Invalid webhook secret")

        rows = normalize_payload(payload)
        if not rows:
            raise ValidationError("Webhook payload must be an object or a list of objects")
        return SyncService.receive_rows(db, integration, rows, TRIGGER_WEBHOOK)

    @staticmethod
    def latest_values(db: Session, integration: Integration) -> list[dict]:
        """Most recent value of each of the integration's fields."""
        values = []
        for field in integration.data_fields:
            latest = DataFieldService.latest_value(db, field.id)
            values.append({
                "data_field_id": field.id,
                "name": field.name,
                "variable_name": field.variable_name,
                "field_type": field.field_type,
                "value": latest.value if latest else None,
                "synced_at": latest.synced_at if latest else None,
            })
        return values


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored as naive UTC."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
