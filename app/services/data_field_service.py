"""
Service for handling DataField operations.
"""
import json
import logging
import re
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, FormulaError, NotFoundError, ValidationError
from app.core.formula_parser import FormulaParser, FUNCTIONS
from app.core.sanitization import sanitize_name
from app.models import DataField, DataValue, FieldType, Integration, Kpi, KpiSource
from app.schemas.data_fields import DataFieldCreateRequest, DataFieldUpdateRequest

logger = logging.getLogger(__name__)

TRANSFORM_VARIABLE = "value"

TRUE_STRINGS = {"true", "1", "yes", "y", "on"}
FALSE_STRINGS = {"false", "0", "no", "n", "off", ""}


class DataFieldService:
    """Service for handling DataField business logic."""

    @staticmethod
    def generate_variable_name(name: str) -> str:
        """
        Convert a display name to a snake_case variable name.
        e.g., "Revenue Per Employee" -> "revenue_per_employee"
        """
        cleaned = re.sub(r'[^a-zA-Z0-9\s_]', '', name)
        var_name = re.sub(r'\s+', '_', cleaned.strip()).lower()
        if var_name and var_name[0].isdigit():
            var_name = '_' + var_name
        if var_name in FUNCTIONS:
            var_name = f"{var_name}_value"
        return var_name or 'unnamed_field'

    @staticmethod
    def validate_transform(field_type: str, transform: Optional[str]) -> Optional[str]:
        """
        A transform is a formula over the single variable ``value`` and is only
        meaningful for NUMBER fields.
        """
        if not transform or not transform.strip():
            return None
        if field_type != FieldType.NUMBER.value:
            raise ValidationError(f"Transforms are only supported for NUMBER fields, not {field_type}")
        is_valid, error, _ = FormulaParser.validate_formula(transform, [TRANSFORM_VARIABLE])
        if not is_valid:
            raise ValidationError(f"Invalid transform: {error}")
        return transform.strip()

    @staticmethod
    def coerce_value(field_type: str, raw: Any) -> Any:
        """
        Coerce an incoming value to the field's type. Lists are coerced item by item.

        Raises ValueError when the value cannot be represented in the field type.
        """
        if raw is None:
            return None
        if isinstance(raw, list) and field_type != FieldType.JSON.value:
            return [DataFieldService.coerce_value(field_type, item) for item in raw]

        if field_type == FieldType.NUMBER.value:
            if isinstance(raw, bool):
                return 1.0 if raw else 0.0
            if isinstance(raw, (int, float)):
                return float(raw)
            if isinstance(raw, str):
                cleaned = raw.strip().replace(",", "")
                try:
                    return float(cleaned)
                except ValueError:
                    raise ValueError(f"'{raw}' is not a number")
            if isinstance(raw, dict):
                # Objects are kept for value/amount/total extraction at calculation time
                return raw
            raise ValueError(f"Cannot convert {type(raw).__name__} to NUMBER")

        if field_type == FieldType.BOOLEAN.value:
            if isinstance(raw, bool):
                return raw
            if isinstance(raw, (int, float)):
                return raw != 0
            if isinstance(raw, str) and raw.strip().lower() in TRUE_STRINGS | FALSE_STRINGS:
                return raw.strip().lower() in TRUE_STRINGS
            raise ValueError(f"'{raw}' is not a boolean")

        if field_type == FieldType.DATE.value:
            if isinstance(raw, str):
                try:
                    return datetime.fromisoformat(raw.strip().replace("Z", "+00:00")).isoformat()
                except ValueError:
                    raise ValueError(f"'{raw}' is not an ISO date")
            raise ValueError(f"Cannot convert {type(raw).__name__} to DATE")

        if field_type == FieldType.STRING.value:
            if isinstance(raw, str):
                return raw
            if isinstance(raw, dict):
                return json.dumps(raw)
            return str(raw)

        return raw

    @staticmethod
    def apply_transform(field: DataField, value: Any) -> Any:
        """Run a NUMBER field's transform over a coerced value (or each list item)."""
        if not field.transform or value is None or isinstance(value, dict):
            return value
        if isinstance(value, list):
            return [DataFieldService.apply_transform(field, item) for item in value]
        try:
            return FormulaParser.evaluate(field.transform, {TRANSFORM_VARIABLE: value})
        except FormulaError as e:
            raise ValueError(f"Transform failed: {e.detail}")

    @staticmethod
    def prepare_value(field: DataField, raw: Any) -> Any:
        """Coerce then transform a raw value for storage."""
        return DataFieldService.apply_transform(field, DataFieldService.coerce_value(field.field_type, raw))

    # --- Queries ---

    @staticmethod
    def get_all_data_fields(db: Session, integration_id: Optional[UUID] = None) -> list[DataField]:
        query = db.query(DataField)
        if integration_id:
            query = query.filter(DataField.integration_id == integration_id)
        return query.order_by(DataField.name).all()

    @staticmethod
    def get_data_field(db: Session, field_id: UUID) -> DataField:
        field = db.query(DataField).filter(DataField.id == field_id).first()
        if not field:
            raise NotFoundError("Data field")
        return field

    @staticmethod
    def latest_value(db: Session, field_id: UUID) -> Optional[DataValue]:
        return db.query(DataValue).filter(
            DataValue.data_field_id == field_id
        ).order_by(DataValue.synced_at.desc()).first()

    @staticmethod
    def values_between(
        db: Session,
        field_id: UUID,
        start: Optional[datetime],
        end: datetime,
    ) -> list[DataValue]:
        """Values ordered oldest first."""
        query = db.query(DataValue).filter(
            DataValue.data_field_id == field_id,
            DataValue.synced_at <= end,
        )
        if start is not None:
            query = query.filter(DataValue.synced_at >= start)
        return query.order_by(DataValue.synced_at.asc()).all()

    @staticmethod
    def values_before(
        db: Session,
        field_id: UUID,
        before: datetime,
        limit: int,
        offset: int = 0,
    ) -> list[DataValue]:
        """Values strictly before ``before``, newest first."""
        return db.query(DataValue).filter(
            DataValue.data_field_id == field_id,
            DataValue.synced_at < before,
        ).order_by(DataValue.synced_at.desc()).offset(offset).limit(limit).all()

    @staticmethod
    def earliest_value_time(db: Session, field_ids: list[UUID]) -> Optional[datetime]:
        if not field_ids:
            return None
        return db.query(func.min(DataValue.synced_at)).filter(
            DataValue.data_field_id.in_(field_ids)
        ).scalar()

    @staticmethod
    def dependent_kpis(db: Session, field_ids: list[UUID]) -> list[Kpi]:
        """KPIs with at least one source bound to one of the fields."""
        if not field_ids:
            return []
        return db.query(Kpi).join(KpiSource, KpiSource.kpi_id == Kpi.id).filter(
            KpiSource.data_field_id.in_(field_ids)
        ).distinct().order_by(Kpi.name).all()

    @staticmethod
    def enrich_with_metadata(db: Session, fields: list[DataField]) -> list[dict]:
        """Add last value and KPI usage count to data fields."""
        result = []
        for field in fields:
            latest = DataFieldService.latest_value(db, field.id)
            kpi_count = db.query(KpiSource).filter(KpiSource.data_field_id == field.id).count()
            result.append({
                "id": field.id,
                "integration_id": field.integration_id,
                "name": field.name,
                "variable_name": field.variable_name,
                "source_field": field.source_field,
                "target_field": field.target_field,
                "field_type": field.field_type,
                "transform": field.transform,
                "created_at": field.created_at,
                "last_value": latest.value if latest else None,
                "last_synced_at": latest.synced_at if latest else None,
                "kpi_count": kpi_count,
            })
        return result

    # --- Mutations ---

    @staticmethod
    def create_data_field(
        db: Session,
        data: DataFieldCreateRequest,
        integration: Optional[Integration] = None,
    ) -> DataField:
        """Create a data field on an integration."""
        if integration is None:
            integration = db.query(Integration).filter(Integration.id == data.integration_id).first()
            if not integration:
                raise NotFoundError("Integration")

        name = sanitize_name(data.name)
        if not name:
            raise ValidationError("Data field name cannot be empty")

        field_type = data.field_type.value
        field = DataField(
            integration_id=integration.id,
            name=name,
            variable_name=DataFieldService.generate_variable_name(name),
            source_field=(data.source_field or name).strip(),
            target_field=data.target_field or name,
            field_type=field_type,
            transform=DataFieldService.validate_transform(field_type, data.transform),
        )
        db.add(field)
        db.commit()
        db.refresh(field)
        return field

    @staticmethod
    def update_data_field(db: Session, field: DataField, data: DataFieldUpdateRequest) -> DataField:
        """Update a data field. variable_name is kept so existing aliases stay stable."""
        if data.name is not None:
            field.name = sanitize_name(data.name) or field.name
        if data.source_field is not None:
            field.source_field = data.source_field.strip()
        if data.target_field is not None:
            field.target_field = data.target_field
        if data.field_type is not None:
            field.field_type = data.field_type.value

        transform = data.transform if "transform" in data.model_fields_set else field.transform
        field.transform = DataFieldService.validate_transform(field.field_type, transform)

        db.commit()
        db.refresh(field)
        return field

    @staticmethod
    def delete_data_field(db: Session, field: DataField) -> None:
        """
        Delete a data field and its values.
        Rejected with ConflictError while any KPI uses the field as a source.
        """
        kpis = DataFieldService.dependent_kpis(db, [field.id])
        if kpis:
            names = ", ".join(k.name for k in kpis)
            raise ConflictError(
                f"Cannot delete data field '{field.name}': used by {len(kpis)} KPI(s): {names}"
            )

        db.delete(field)
        db.commit()
        logger.info(f"Deleted data field {field.id}")
