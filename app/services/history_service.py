"""
KPI history: evaluates a KPI's formula over time-bucketed data field values.
"""
import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import FormulaError, ValidationError
from app.core.formula_parser import FormulaParser
from app.models import Kpi
from app.services.calculation_service import CalculationService
from app.services.data_field_service import DataFieldService

logger = logging.getLogger(__name__)

PERIODS = ("1h", "6h", "24h", "7d", "30d", "90d", "6m", "1y", "all")
INTERVALS = ("hourly", "daily", "weekly", "monthly")

# Window lengths for every period except "all"
PERIOD_DELTAS = {
    "1h": timedelta(hours=1),
    "6h": timedelta(hours=6),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}
PERIOD_MONTHS = {"6m": 6, "1y": 12}

DEFAULT_ALL_DAYS = 30

# Rows fetched per query when looking back for a carry-forward seed
SEED_BATCH_SIZE = 20


@dataclass
class ParsedPeriod:
    start: datetime
    end: datetime
    days: int


def subtract_months(moment: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping the day to the target month's length."""
    month_index = moment.year * 12 + moment.month - 1 - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def parse_period(period: str, now: datetime, earliest: Optional[datetime] = None) -> ParsedPeriod:
    """
    Resolve a period name into a [start, end] window ending now.

    "all" starts at the earliest stored value (30 days when there is none).
    """
    if period not in PERIODS:
        raise ValidationError(f"Invalid period '{period}'. Use one of: {', '.join(PERIODS)}")

    if period == "all":
        start = earliest if earliest is not None and earliest < now else now - timedelta(days=DEFAULT_ALL_DAYS)
    elif period in PERIOD_MONTHS:
        start = subtract_months(now, PERIOD_MONTHS[period])
    else:
        start = now - PERIOD_DELTAS[period]

    seconds = (now - start).total_seconds()
    days = max(1, int(-(-seconds // 86400)))
    return ParsedPeriod(start=start, end=now, days=days)


def default_interval(days: int) -> str:
    """Pick the bucket size for a window length."""
    if days <= 2:
        return "hourly"
    if days <= 60:
        return "daily"
    if days <= 180:
        return "weekly"
    return "monthly"


def bucket_start(moment: datetime, interval: str) -> datetime:
    """Truncate to the start of the hour, day, week (Monday) or month."""
    if interval == "hourly":
        return moment.replace(minute=0, second=0, microsecond=0)
    day = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if interval == "daily":
        return day
    if interval == "weekly":
        return day - timedelta(days=day.weekday())
    return day.replace(day=1)


def next_bucket(moment: datetime, interval: str) -> datetime:
    if interval == "hourly":
        return moment + timedelta(hours=1)
    if interval == "daily":
        return moment + timedelta(days=1)
    if interval == "weekly":
        return moment + timedelta(days=7)
    return subtract_months(moment, -1)


def generate_buckets(start: datetime, end: datetime, interval: str) -> list[datetime]:
    buckets = []
    current = bucket_start(start, interval)
    while current <= end:
        buckets.append(current)
        current = next_bucket(current, interval)
    return buckets


class HistoryService:
    """Builds KPI time series and period comparisons."""

    @staticmethod
    def _bucketed_values(
        db: Session,
        field_id,
        start: datetime,
        end: datetime,
        interval: str,
    ) -> dict[datetime, Any]:
        """Latest usable value per bucket for one data field."""
        buckets: dict[datetime, Any] = {}
        for value in DataFieldService.values_between(db, field_id, start, end):
            numeric = CalculationService.extract_numeric_value(value.value)
            if numeric is not None:
                buckets[bucket_start(value.synced_at, interval)] = numeric
        return buckets

    @staticmethod
    def _value_before(db: Session, field_id, start: datetime) -> Any:
        """Last usable value before the window, seeding carry-forward."""
        offset = 0
        while True:
            batch = DataFieldService.values_before(db, field_id, start, SEED_BATCH_SIZE, offset)
            for value in batch:
                numeric = CalculationService.extract_numeric_value(value.value)
                if numeric is not None:
                    return numeric
            if len(batch) < SEED_BATCH_SIZE:
                return None
            offset += SEED_BATCH_SIZE

    @staticmethod
    def series(
        db: Session,
        kpi: Kpi,
        start: datetime,
        end: datetime,
        interval: str,
    ) -> list[dict]:
        """
        Evaluate the formula for every bucket in the window.

        The latest value within a bucket wins. Buckets without new data carry
        the last known value forward. Buckets before every source has a value,
        and buckets whose evaluation fails, are skipped.
        """
        sources = list(kpi.sources)
        if not sources:
            return []

        per_source = {
            s.alias: HistoryService._bucketed_values(db, s.data_field_id, start, end, interval)
            for s in sources
        }
        last_known: dict[str, Any] = {}
        for s in sources:
            seed = HistoryService._value_before(db, s.data_field_id, start)
            if seed is not None:
                last_known[s.alias] = seed

        points = []
        for bucket in generate_buckets(start, end, interval):
            for s in sources:
                if bucket in per_source[s.alias]:
                    last_known[s.alias] = per_source[s.alias][bucket]
            if len(last_known) < len(sources):
                continue
            try:
                value = FormulaParser.evaluate(kpi.formula, dict(last_known))
            except FormulaError:
                continue
            points.append({"timestamp": bucket, "value": round(value, 4)})
        return points

    @staticmethod
    def compare(points: list[dict]) -> dict:
        """Compare the last point with the midpoint of the series."""
        if len(points) < 2:
            return {
                "previous_value": None,
                "current_value": points[-1]["value"] if points else None,
                "change": None,
                "direction": None,
            }

        previous = points[len(points) // 2]["value"]
        current = points[-1]["value"]
        trend = CalculationService.compute_trend(previous, current)
        return {
            "previous_value": previous,
            "current_value": current,
            "change": round(trend.change, 1) if trend.change is not None else None,
            "direction": trend.direction,
        }

    @staticmethod
    def get_kpi_history(
        db: Session,
        kpi: Kpi,
        period: str,
        interval: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        """Time series and comparison for a KPI over a named period."""
        now = now or datetime.utcnow()
        if interval is not None and interval not in INTERVALS:
            raise ValidationError(f"Invalid interval '{interval}'. Use one of: {', '.join(INTERVALS)}")

        earliest = None
        if period == "all":
            earliest = DataFieldService.earliest_value_time(db, [s.data_field_id for s in kpi.sources])

        parsed = parse_period(period, now, earliest)
        interval = interval or default_interval(parsed.days)
        points = HistoryService.series(db, kpi, parsed.start, parsed.end, interval)

        return {
            "kpi_id": kpi.id,
            "name": kpi.name,
            "period": period,
            "interval": interval,
            "data": points,
            "comparison": HistoryService.compare(points),
            "calculated_at": now,
        }

    @staticmethod
    def field_values(db: Session, field_id, period: str, now: Optional[datetime] = None) -> list:
        """Raw values of one data field within a named period, oldest first."""
        now = now or datetime.utcnow()
        earliest = DataFieldService.earliest_value_time(db, [field_id]) if period == "all" else None
        parsed = parse_period(period, now, earliest)
        return DataFieldService.values_between(db, field_id, parsed.start, parsed.end)
