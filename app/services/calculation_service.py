"""
Calculation service for safely computing KPI values, target progress and trends.
"""
import math
from typing import Any, Optional
from dataclasses import dataclass

from app.core.exceptions import FormulaError
from app.core.formula_parser import FormulaParser

# Keys checked, in order, when a data value arrives as an object
NUMERIC_OBJECT_KEYS = ("value", "amount", "total", "count", "sum")

# Changes within +/- this many percent are reported as unchanged
TREND_THRESHOLD = 0.1


@dataclass
class CalculationResult:
    """Result of a KPI calculation."""
    success: bool
    value: Optional[float]
    error: Optional[str]


@dataclass
class Trend:
    """Relative change between two values."""
    change: Optional[float]  # Percent
    direction: Optional[str]  # "up" | "down" | "unchanged"


class CalculationService:
    """Service for safely computing KPI values and derived figures."""

    @staticmethod
    def extract_numeric_value(raw: Any) -> Optional[float | list[float]]:
        """
        Coerce a stored data value into something a formula can use.

        Numbers and numeric strings become floats, lists become lists of
        floats (non-numeric items dropped, None if nothing is left), and objects are read through
        their first numeric ``value``/``amount``/``total``/``count``/``sum`` key.
        Anything else yields None.
        """
        if raw is None or isinstance(raw, bool):
            return None
        if isinstance(raw, (int, float)):
            return float(raw) if math.isfinite(raw) else None
        if isinstance(raw, str):
            try:
                value = float(raw.strip())
            except ValueError:
                return None
            return value if math.isfinite(value) else None
        if isinstance(raw, list):
            items = [CalculationService.extract_numeric_value(item) for item in raw]
            numbers = [item for item in items if isinstance(item, float)]
            return numbers or None
        if isinstance(raw, dict):
            for key in NUMERIC_OBJECT_KEYS:
                if key in raw:
                    value = CalculationService.extract_numeric_value(raw[key])
                    if isinstance(value, float):
                        return value
        return None

    @staticmethod
    def calculate(formula: str, values: dict[str, Any]) -> CalculationResult:
        """
        Safely calculate a KPI value from a formula and input values.

        Never raises: every failure is reported through ``error``.

        Args:
            formula: The KPI formula string
            values: Mapping of alias to number or list of numbers

        Returns:
            CalculationResult with success status, value, and any error
        """
        missing = [key for key, val in values.items() if val is None]
        if missing:
            return CalculationResult(
                success=False,
                value=None,
                error=f"Missing data for: {', '.join(missing)}",
            )

        try:
            result = FormulaParser.evaluate(formula, values)
        except FormulaError as e:
            return CalculationResult(success=False, value=None, error=e.detail)

        return CalculationResult(success=True, value=round(result, 4), error=None)

    @staticmethod
    def calculate_progress(
        current: Optional[float],
        target: Optional[float],
        direction: Optional[str],
    ) -> tuple[Optional[float], Optional[bool]]:
        """
        Compute target progress and on-track status.

        progress = current / target * 100, rounded to one decimal and not
        clamped. on_track compares values: at or above target for "increase",
        at or below for "decrease", None without a direction. Both are None
        when there is no current value or the target is missing or zero.
        """
        if current is None or target is None or target == 0:
            return None, None

        progress = round(current / target * 100, 1)

        if direction == "increase":
            on_track = current >= target
        elif direction == "decrease":
            on_track = current <= target
        else:
            on_track = None

        return progress, on_track

    @staticmethod
    def compute_trend(previous: Optional[float], current: Optional[float]) -> Trend:
        """Relative change from previous to current, in percent of |previous|."""
        if previous is None or current is None or previous == 0:
            return Trend(change=None, direction=None)

        change = (current - previous) / abs(previous) * 100

        if change > TREND_THRESHOLD:
            direction = "up"
        elif change < -TREND_THRESHOLD:
            direction = "down"
        else:
            direction = "unchanged"

        return Trend(change=change, direction=direction)
