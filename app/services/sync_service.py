import logging
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import SessionLocal
from app.core.exceptions import ExternalFetchError, NotFoundError
from app.models import DataValue, Integration, IntegrationStatus, IntegrationType, SyncLog
from app.services.connectors import extract_path, get_connector
from app.services.data_field_service import DataFieldService
from app.services.kpi_service import KPIService

logger = logging.getLogger(__name__)

TRIGGER_MANUAL = "manual"
TRIGGER_SCHEDULED = "scheduled"
TRIGGER_WEBHOOK = "webhook"


class SyncService:
    """Orchestrates pulling rows from integrations into data field values."""

    @staticmethod
    def backoff_seconds(retry_count: int) -> int:
        """Delay before retry number ``retry_count`` (1, 2, 4 minutes by default)."""
        return settings.SYNC_BASE_BACKOFF_SECONDS * 2 ** (max(retry_count, 1) - 1)

    @staticmethod
    def ingest_rows(
        db: Session,
        integration: Integration,
        rows: list[dict],
        synced_at: datetime,
    ) -> tuple[int, set[UUID]]:
        """
        Store one DataValue per data field from a batch of rows.

        Each field's value is read by its source_field dot path. A single
        match is stored as-is, several as a list. Values that cannot be
        coerced to the field type are skipped.
        Returns the number of values written and the fields that changed.
        """
        written = 0
        field_ids: set[UUID] = set()
        for field in integration.data_fields:
            values: list[Any] = []
            for row in rows:
                raw = extract_path(row, field.source_field)
                if raw is None:
                    continue
                try:
                    values.append(DataFieldService.prepare_value(field, raw))
                except ValueError as e:
                    logger.warning(f"Skipping value for field {field.id} ({field.source_field}): {e}")
            if not values:
                continue

            db.add(DataValue(
                data_field_id=field.id,
                value=values[0] if len(values) == 1 else values,
                synced_at=synced_at,
            ))
            written += 1
            field_ids.add(field.id)
        return written, field_ids

    @staticmethod
    def _schedule_next(integration: Integration, now: datetime) -> None:
        if integration.sync_enabled and integration.sync_interval:
            integration.next_sync_at = now + timedelta(seconds=integration.sync_interval)
        else:
            integration.next_sync_at = None

    @staticmethod
    def record_failure(integration: Integration, error: str, now: datetime) -> None:
        """Count a failed attempt and back off; stop auto sync after too many."""
        integration.status = IntegrationStatus.ERROR.value
        integration.error_message = error[:500]
        integration.retry_count = (integration.retry_count or 0) + 1

        if integration.retry_count >= settings.SYNC_MAX_RETRIES:
            integration.sync_enabled = False
            integration.next_sync_at = None
            logger.warning(
                f"Auto sync disabled for integration {integration.id} after {integration.retry_count} failures"
            )
        else:
            integration.next_sync_at = now + timedelta(seconds=SyncService.backoff_seconds(integration.retry_count))

    @staticmethod
    def execute_sync(
        db: Session,
        integration_id: UUID,
        trigger_type: str = TRIGGER_MANUAL,
        now: Optional[datetime] = None,
    ) -> SyncLog:
        """
        Main sync logic:
        1. Create SyncLog(status=running)
        2. Fetch rows through the integration's connector
        3. Store one value per data field
        4. Recalculate affected KPIs
        5. Update the log and the integration's schedule
        """
        integration = db.query(Integration).filter(Integration.id == integration_id).first()
        if not integration:
            raise NotFoundError("Integration")

        started_at = now or datetime.utcnow()
        sync_log = SyncLog(
            integration_id=integration.id,
            status="running",
            trigger_type=trigger_type,
            started_at=started_at,
        )
        db.add(sync_log)
        db.commit()
        db.refresh(sync_log)

        try:
            result = get_connector(integration).fetch_data()
            records, field_ids = SyncService.ingest_rows(db, integration, result.rows, started_at)
            db.flush()
            kpis = KPIService.recalculate_for_fields(db, list(field_ids))

            integration.status = IntegrationStatus.SYNCED.value
            integration.error_message = None
            integration.last_sync = started_at
            integration.retry_count = 0
            SyncService._schedule_next(integration, started_at)

            sync_log.status = "success"
            sync_log.records_count = records
            logger.info(
                f"Synced integration {integration.id}: {records} values from {len(result.rows)} rows, "
                f"{kpis} KPIs recalculated"
            )
        except (ExternalFetchError, ValueError) as e:
            db.rollback()
            error = e.detail if isinstance(e, ExternalFetchError) else str(e)
            SyncService.record_failure(integration, error, started_at)
            sync_log.status = "failed"
            sync_log.error_message = error[:500]
            logger.warning(f"Sync failed for integration {integration.id}: {error}")
        except Exception as e:
            db.rollback()
            logger.error(f"Sync failed for integration {integration_id}: {e}", exc_info=True)
            SyncService.record_failure(integration, str(e), started_at)
            sync_log.status = "failed"
            sync_log.error_message = str(e)[:500]

        sync_log.completed_at = datetime.utcnow() if now is None else started_at
        sync_log.duration_ms = int((sync_log.completed_at - started_at).total_seconds() * 1000)
        db.commit()
        db.refresh(sync_log)
        return sync_log

    @staticmethod
    def receive_rows(db: Session, integration: Integration, rows: list[dict], trigger_type: str) -> dict:
        """Store pushed rows (webhook or bulk import) with a sync log."""
        now = datetime.utcnow()
        records, field_ids = SyncService.ingest_rows(db, integration, rows, now)
        db.flush()
        kpis = KPIService.recalculate_for_fields(db, list(field_ids))

        integration.status = IntegrationStatus.SYNCED.value
        integration.error_message = None
        integration.last_sync = now
        db.add(SyncLog(
            integration_id=integration.id,
            status="success",
            trigger_type=trigger_type,
            started_at=now,
            completed_at=datetime.utcnow(),
            duration_ms=0,
            records_count=records,
        ))
        db.commit()
        return {"records_count": records, "kpis_recalculated": kpis, "errors": []}

    # --- Scheduling ---

    @staticmethod
    def due_integrations(db: Session, now: Optional[datetime] = None) -> list[Integration]:
        """API integrations with auto sync on whose next sync time has passed (or was never set)."""
        now = now or datetime.utcnow()
        return db.query(Integration).filter(
            Integration.type == IntegrationType.API.value,
            Integration.sync_enabled.is_(True),
            Integration.sync_interval.isnot(None),
            or_(Integration.next_sync_at.is_(None), Integration.next_sync_at <= now),
        ).order_by(Integration.next_sync_at).all()

    @staticmethod
    def run_due_syncs() -> int:
        """Scheduler job: sync every due integration in its own session."""
        db = SessionLocal()
        try:
            due = [i.id for i in SyncService.due_integrations(db)]
            for integration_id in due:
                SyncService.execute_sync(db, integration_id, trigger_type=TRIGGER_SCHEDULED)
            if due:
                logger.info(f"Scheduled sync ran for {len(due)} integration(s)")
            return len(due)
        finally:
            db.close()

    # --- Sync logs ---

    @staticmethod
    def get_sync_logs(db: Session, integration_id: UUID, page: int = 1, page_size: int = 20) -> tuple[list[SyncLog], int]:
        """A page of an integration's sync logs, newest first, with the total count."""
        query = db.query(SyncLog).filter(SyncLog.integration_id == integration_id)
        total = query.count()
        logs = query.order_by(SyncLog.started_at.desc()).offset((page - 1) * page_size).limit(page_size).all()
        return logs, total
