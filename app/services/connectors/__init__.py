from app.core.encryption import decrypt_json
from app.services.connectors.base import (
    BaseConnector,
    ConnectionResult,
    FetchResult,
    FieldSchema,
    extract_path,
)
from app.services.connectors.api import ApiConnector, normalize_payload
from app.services.connectors.manual import ManualConnector
from app.services.connectors.webhook import WebhookConnector

CONNECTOR_REGISTRY = {
    "API": ApiConnector,
    "MANUAL": ManualConnector,
    "WEBHOOK": WebhookConnector,
}


def get_connector(integration, config: dict | None = None) -> BaseConnector:
    """Factory: return the correct connector instance for an integration."""
    connector_cls = CONNECTOR_REGISTRY.get(integration.type)
    if connector_cls is None:
        raise ValueError(f"Unknown integration type: {integration.type}")
    if config is None:
        config = decrypt_json(integration.config_encrypted)
    return connector_cls(integration, config)


__all__ = [
    "BaseConnector",
    "ConnectionResult",
    "FetchResult",
    "FieldSchema",
    "extract_path",
    "normalize_payload",
    "ApiConnector",
    "ManualConnector",
    "WebhookConnector",
    "get_connector",
]
