from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

# Dot paths are followed this many levels deep when discovering fields
MAX_DISCOVERY_DEPTH = 3


@dataclass
class ConnectionResult:
    """Outcome of a connection test."""
    success: bool
    message: str
    response_time_ms: Optional[int] = None
    error: Optional[str] = None


@dataclass
class FieldSchema:
    """A field available in the source, addressed by dot path."""
    name: str
    path: str
    data_type: str      # "string" | "number" | "boolean" | "date" | "object" | "array"
    sample: Any = None


@dataclass
class FetchResult:
    """Rows fetched from the source."""
    rows: list[dict] = field(default_factory=list)
    fetched_at: datetime = field(default_factory=datetime.utcnow)


def extract_path(row: Any, path: str) -> Any:
    """Follow a dot path ("stats.revenue.total") into nested dicts. Missing keys give None."""
    current = row
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return None
    return current


def infer_data_type(value: Any) -> str:
    if value is None:
        return "string"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, str):
        try:
            datetime.fromisoformat(value.replace("Z", "+00:00"))
            return "date"
        except ValueError:
            return "string"
    return "string"


def fields_from_row(row: dict, prefix: str = "") -> list[FieldSchema]:
    """Describe a sample row's fields, recursing into nested objects."""
    fields = []
    for key, value in row.items():
        path = f"{prefix}.{key}" if prefix else key
        data_type = infer_data_type(value)
        fields.append(FieldSchema(name=key, path=path, data_type=data_type, sample=value))
        if data_type == "object" and len(path.split(".")) < MAX_DISCOVERY_DEPTH:
            fields.extend(fields_from_row(value, path))
    return fields


class BaseConnector(ABC):
    """Abstract base class for all integration connectors."""

    def __init__(self, integration, config: Optional[dict] = None):
        self.integration = integration
        self.config = config or {}

    @abstractmethod
    def test_connection(self) -> ConnectionResult:
        """Check that the source is reachable and the credentials work. Never raises."""
        ...

    @abstractmethod
    def fetch_data(self, limit: Optional[int] = None) -> FetchResult:
        """
        Fetch rows from the source.
        Raises ExternalFetchError when the source cannot be read.
        """
        ...

    @abstractmethod
    def discover_fields(self) -> list[FieldSchema]:
        """Fields available for mapping to data fields."""
        ...

    def declared_fields(self) -> list[FieldSchema]:
        """Fields listed in the config (manual and webhook integrations)."""
        fields = []
        for item in self.config.get("fields", []):
            if isinstance(item, dict) and item.get("name"):
                fields.append(FieldSchema(
                    name=item["name"],
                    path=item.get("path", item["name"]),
                    data_type=item.get("dataType", "number"),
                ))
        return fields
