"""
KPI definitions, source binding and evaluation.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.exceptions import FormulaError, NotFoundError, ValidationError
from app.core.formula_parser import FormulaParser, FUNCTIONS
from app.core.sanitization import sanitize_description, sanitize_name, validate_alias
from app.models import DataField, Integration, Kpi, KpiSource, User, UserRole
from app.schemas.kpi import KpiCreateRequest, KpiSourceInput, KpiUpdateRequest
from app.services.access_service import AccessFlags, AccessService, VIEW
from app.services.calculation_service import CalculationService
from app.services.data_field_service import DataFieldService

logger = logging.getLogger(__name__)


@dataclass
class KpiEvaluation:
    """Live evaluation of a KPI. Failures are carried in calculation_error."""
    current_value: Optional[float]
    progress: Optional[float]
    on_track: Optional[bool]
    calculation_error: Optional[str]
    calculated_at: datetime

    def to_kpi_data(self, kpi: Kpi) -> dict:
        """Shape embedded in dashboard widgets."""
        return {
            "current_value": self.current_value,
            "target_value": kpi.target_value,
            "progress": self.progress,
            "on_track": self.on_track,
            "error": self.calculation_error,
        }


@dataclass
class ResolvedSource:
    data_field: DataField
    alias: str


class KPIService:
    """Service for KPI business logic."""

    # --- Evaluation ---

    @staticmethod
    def current_inputs(db: Session, kpi: Kpi) -> tuple[dict[str, Any], list[str]]:
        """Latest numeric value per source alias, plus the aliases with no usable data."""
        values: dict[str, Any] = {}
        missing: list[str] = []
        for source in kpi.sources:
            latest = DataFieldService.latest_value(db, source.data_field_id)
            numeric = CalculationService.extract_numeric_value(latest.value) if latest else None
            if numeric is None:
                missing.append(source.alias)
            else:
                values[source.alias] = numeric
        return values, missing

    @staticmethod
    def evaluate(db: Session, kpi: Kpi) -> KpiEvaluation:
        """
        Evaluate a KPI from the latest value of each source.

        Never raises: a missing value, a formula error or an unexpected
        failure is reported as calculation_error with current_value None.
        """
        calculated_at = datetime.utcnow()
        try:
            values, missing = KPIService.current_inputs(db, kpi)
            if missing:
                return KpiEvaluation(None, None, None, f"Missing data for: {', '.join(missing)}", calculated_at)

            result = CalculationService.calculate(kpi.formula, values)
            if not result.success:
                return KpiEvaluation(None, None, None, result.error, calculated_at)

            progress, on_track = CalculationService.calculate_progress(
                result.value, kpi.target_value, kpi.target_direction
            )
            return KpiEvaluation(result.value, progress, on_track, None, calculated_at)
        except Exception as e:
            logger.error(f"Unexpected error evaluating KPI {kpi.id}: {e}", exc_info=True)
            return KpiEvaluation(None, None, None, "Calculation failed", calculated_at)

    @staticmethod
    def recalculate(db: Session, kpi: Kpi, commit: bool = True) -> KpiEvaluation:
        """Evaluate and store the result on the KPI record."""
        evaluation = KPIService.evaluate(db, kpi)
        kpi.current_value = evaluation.current_value
        kpi.calculation_error = evaluation.calculation_error
        kpi.calculated_at = evaluation.calculated_at
        if evaluation.calculation_error:
            logger.warning(f"KPI {kpi.id} calculation failed: {evaluation.calculation_error}")
        if commit:
            db.commit()
            db.refresh(kpi)
        return evaluation

    @staticmethod
    def recalculate_for_fields(db: Session, field_ids: list[UUID]) -> int:
        """Recalculate every KPI sourcing one of the fields. Returns the count."""
        kpis = DataFieldService.dependent_kpis(db, list(field_ids))
        for kpi in kpis:
            KPIService.recalculate(db, kpi, commit=False)
        db.commit()
        return len(kpis)

    # --- Formula and source validation ---

    @staticmethod
    def resolve_sources(db: Session, sources: list[KpiSourceInput]) -> list[ResolvedSource]:
        """
        Load each source's data field and settle its alias.
        Aliases default to the field's variable name and must be unique.
        """
        resolved = []
        seen: set[str] = set()
        for source in sources:
            field = db.query(DataField).filter(DataField.id == source.data_field_id).first()
            if not field:
                raise NotFoundError("Data field", f"Data field {source.data_field_id} not found")

            alias = (source.alias or field.variable_name).strip()
            if not validate_alias(alias):
                raise ValidationError(
                    f"Invalid alias '{alias}': use letters, digits and underscores, starting with a letter"
                )
            if alias in FUNCTIONS:
                raise ValidationError(f"Alias '{alias}' is a reserved function name")
            if alias in seen:
                raise ValidationError(f"Duplicate alias '{alias}'")
            seen.add(alias)
            resolved.append(ResolvedSource(data_field=field, alias=alias))
        return resolved

    @staticmethod
    def check_formula(formula: str, aliases: list[str]) -> list[str]:
        """
        Validate the formula against the alias set in both directions.

        Every variable must be a declared alias and every alias must be used.
        Returns the formula's variables; raises FormulaError otherwise.
        """
        is_valid, error, variables = FormulaParser.validate_formula(formula, aliases)
        if not is_valid:
            raise FormulaError(error)

        _, unused = FormulaParser.check_alias_round_trip(formula, aliases)
        if unused:
            raise FormulaError(f"Sources not used in formula: {', '.join(unused)}")
        return variables

    @staticmethod
    def validate_formula_request(
        db: Session,
        formula: str,
        sources: Optional[list[KpiSourceInput]] = None,
        aliases: Optional[list[str]] = None,
    ) -> dict:
        """Non-throwing validation for the formula editor."""
        if sources is not None:
            aliases = [s.alias for s in KPIService.resolve_sources(db, sources)]

        is_valid, error, variables = FormulaParser.validate_formula(formula, aliases)
        undeclared: list[str] = []
        unused: list[str] = []
        if aliases is not None and (is_valid or variables):
            undeclared, unused = FormulaParser.check_alias_round_trip(formula, aliases)
            if is_valid and unused:
                is_valid = False
                error = f"Sources not used in formula: {', '.join(unused)}"

        return {
            "valid": is_valid,
            "error": error or None,
            "variables": variables,
            "undeclared_variables": undeclared,
            "unused_aliases": unused,
        }

    # --- Queries ---

    @staticmethod
    def get_kpi(db: Session, kpi_id: UUID) -> Kpi:
        kpi = db.query(Kpi).filter(Kpi.id == kpi_id).first()
        if not kpi:
            raise NotFoundError("KPI")
        return kpi

    @staticmethod
    def get_for_user(db: Session, user: User, kpi_id: UUID, level: str = VIEW) -> tuple[Kpi, AccessFlags]:
        kpi = KPIService.get_kpi(db, kpi_id)
        flags = AccessService.require(user, kpi, level)
        return kpi, flags

    @staticmethod
    def list_kpis(db: Session, user: User) -> list[Kpi]:
        """KPIs the user can view, by name."""
        return AccessService.accessible_query(db, user, "kpi").order_by(Kpi.name).all()

    @staticmethod
    def available_fields(db: Session) -> list[dict]:
        """Data fields grouped by integration, with their latest value, for the KPI builder."""
        integrations = db.query(Integration).order_by(Integration.name).all()
        groups = []
        for integration in integrations:
            fields = []
            for field in integration.data_fields:
                latest = DataFieldService.latest_value(db, field.id)
                fields.append({
                    "id": field.id,
                    "name": field.name,
                    "variable_name": field.variable_name,
                    "field_type": field.field_type,
                    "last_value": latest.value if latest else None,
                    "last_synced_at": latest.synced_at if latest else None,
                })
            groups.append({
                "integration_id": integration.id,
                "integration_name": integration.name,
                "integration_type": integration.type,
                "fields": fields,
            })
        return groups

    # --- Mutations ---

    @staticmethod
    def _set_sources(db: Session, kpi: Kpi, resolved: list[ResolvedSource]) -> None:
        # Old rows must be gone before re-inserting an alias (unique per KPI)
        kpi.sources.clear()
        db.flush()
        for position, source in enumerate(resolved):
            kpi.sources.append(KpiSource(
                data_field_id=source.data_field.id,
                alias=source.alias,
                position=position,
            ))

    @staticmethod
    def create_kpi(db: Session, user: User, data: KpiCreateRequest) -> Kpi:
        """Create a KPI, validate its formula against its sources and store a first evaluation."""
        AccessService.require_role(user, UserRole.EDITOR)

        name = sanitize_name(data.name)
        if not name:
            raise ValidationError("KPI name cannot be empty")

        resolved = KPIService.resolve_sources(db, data.sources)
        KPIService.check_formula(data.formula, [s.alias for s in resolved])

        kpi = Kpi(
            name=name,
            description=sanitize_description(data.description),
            formula=data.formula,
            owner_id=user.id,
            target_value=data.target_value,
            target_direction=data.target_direction.value if data.target_direction else None,
            target_period=data.target_period,
        )
        db.add(kpi)
        KPIService._set_sources(db, kpi, resolved)
        db.flush()

        KPIService.recalculate(db, kpi, commit=False)
        db.commit()
        db.refresh(kpi)
        logger.info(f"Created KPI {kpi.id} ({kpi.name}) for user {user.id}")
        return kpi

    @staticmethod
    def update_kpi(db: Session, kpi: Kpi, data: KpiUpdateRequest) -> Kpi:
        """Apply a partial update. Sources, when given, replace the existing set."""
        fields_set = data.model_fields_set

        if data.name is not None:
            kpi.name = sanitize_name(data.name) or kpi.name
        if "description" in fields_set:
            kpi.description = sanitize_description(data.description)
        if "target_value" in fields_set:
            kpi.target_value = data.target_value
        if "target_direction" in fields_set:
            kpi.target_direction = data.target_direction.value if data.target_direction else None
        if "target_period" in fields_set:
            kpi.target_period = data.target_period

        formula = data.formula or kpi.formula
        if data.sources is not None:
            resolved = KPIService.resolve_sources(db, data.sources)
            KPIService.check_formula(formula, [s.alias for s in resolved])
            KPIService._set_sources(db, kpi, resolved)
        elif data.formula is not None:
            KPIService.check_formula(formula, [s.alias for s in kpi.sources])
        kpi.formula = formula
        db.flush()

        KPIService.recalculate(db, kpi, commit=False)
        db.commit()
        db.refresh(kpi)
        return kpi

    @staticmethod
    def delete_kpi(db: Session, kpi: Kpi) -> None:
        """Delete a KPI with its sources, bound widgets, access entries and share links."""
        db.delete(kpi)
        db.commit()
        logger.info(f"Deleted KPI {kpi.id}")

    # --- Response helpers ---

    @staticmethod
    def to_response(kpi: Kpi, evaluation: Optional[KpiEvaluation] = None, flags: Optional[AccessFlags] = None) -> dict:
        """KPI with sources, live values and the requesting user's access flags."""
        if evaluation is None:
            progress, on_track = CalculationService.calculate_progress(
                kpi.current_value, kpi.target_value, kpi.target_direction
            )
            evaluation = KpiEvaluation(
                kpi.current_value, progress, on_track, kpi.calculation_error, kpi.calculated_at
            )
        return {
            "id": kpi.id,
            "name": kpi.name,
            "description": kpi.description,
            "formula": kpi.formula,
            "owner_id": kpi.owner_id,
            "target_value": kpi.target_value,
            "target_direction": kpi.target_direction,
            "target_period": kpi.target_period,
            "sources": [
                {
                    "id": s.id,
                    "data_field_id": s.data_field_id,
                    "alias": s.alias,
                    "position": s.position,
                    "data_field_name": s.data_field.name if s.data_field else None,
                    "integration_id": s.data_field.integration_id if s.data_field else None,
                    "integration_name": s.data_field.integration.name if s.data_field else None,
                }
                for s in kpi.sources
            ],
            "current_value": evaluation.current_value,
            "progress": evaluation.progress,
            "on_track": evaluation.on_track,
            "calculation_error": evaluation.calculation_error,
            "calculated_at": evaluation.calculated_at,
            "access": flags.to_dict() if flags else None,
            "created_at": kpi.created_at,
            "updated_at": kpi.updated_at,
        }
