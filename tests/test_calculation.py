"""Tests for KPI value calculation, progress and trends."""

import pytest

from app.services.calculation_service import CalculationService


class TestExtractNumericValue:
    """Coercion of stored data values into formula inputs."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            (42, 42.0),
            (3.5, 3.5),
            (" 12.5 ", 12.5),
            ({"amount": 99}, 99.0),
            ({"label": "x", "total": "7"}, 7.0),
            ([1, "2", "n/a", None], [1.0, 2.0]),
        ],
    )
    def test_numeric_inputs(self, raw, expected):
        assert CalculationService.extract_numeric_value(raw) == expected

    @pytest.mark.parametrize("raw", [None, True, "abc", float("nan"), ["x"], {"name": "no number"}])
    def test_unusable_inputs(self, raw):
        assert CalculationService.extract_numeric_value(raw) is None


class TestCalculate:
    def test_success(self):
        result = CalculationService.calculate("revenue / employees", {"revenue": 110000, "employees": 10})
        assert result.success is True
        assert result.value == 11000
        assert result.error is None

    def test_missing_values_reported(self):
        result = CalculationService.calculate("a + b", {"a": 1, "b": None})
        assert result.success is False
        assert result.value is None
        assert result.error == "Missing data for: b"

    def test_formula_errors_do_not_raise(self):
        result = CalculationService.calculate("a / b", {"a": 1, "b": 0})
        assert result.success is False
        assert result.error == "Division by zero"

    def test_result_rounded(self):
        result = CalculationService.calculate("a / b", {"a": 1, "b": 3})
        assert result.value == 0.3333


class TestProgress:
    """Target progress and on-track status."""

    def test_increase_below_target(self):
        progress, on_track = CalculationService.calculate_progress(80, 100, "increase")
        assert progress == 80.0
        assert on_track is False

    def test_increase_above_target_is_not_clamped(self):
        progress, on_track = CalculationService.calculate_progress(120, 100, "increase")
        assert progress == 120.0
        assert on_track is True

    def test_decrease_compares_values(self):
        progress, on_track = CalculationService.calculate_progress(80, 100, "decrease")
        assert progress == 80.0
        assert on_track is True

        _, on_track = CalculationService.calculate_progress(120, 100, "decrease")
        assert on_track is False

    def test_exactly_on_target(self):
        assert CalculationService.calculate_progress(100, 100, "increase") == (100.0, True)
        assert CalculationService.calculate_progress(100, 100, "decrease") == (100.0, True)

    def test_no_direction(self):
        assert CalculationService.calculate_progress(50, 200, None) == (25.0, None)

    def test_zero_target(self):
        assert CalculationService.calculate_progress(5, 0, "increase") == (None, None)
        assert CalculationService.calculate_progress(-5, 0, "decrease") == (None, None)
        assert CalculationService.calculate_progress(0, 0, None) == (None, None)

    def test_missing_values(self):
        assert CalculationService.calculate_progress(None, 100, "increase") == (None, None)
        assert CalculationService.calculate_progress(50, None, "increase") == (None, None)

    def test_rounded_to_one_decimal(self):
        progress, _ = CalculationService.calculate_progress(1, 3, None)
        assert progress == 33.3


class TestTrend:
    def test_up(self):
        trend = CalculationService.compute_trend(100, 150)
        assert trend.change == 50
        assert trend.direction == "up"

    def test_down_uses_absolute_previous(self):
        trend = CalculationService.compute_trend(-100, -150)
        assert trend.change == -50
        assert trend.direction == "down"

    def test_small_changes_are_unchanged(self):
        trend = CalculationService.compute_trend(1000, 1000.5)
        assert trend.direction == "unchanged"

    def test_zero_or_missing_previous(self):
        assert CalculationService.compute_trend(0, 10).direction is None
        assert CalculationService.compute_trend(None, 10).change is None
        assert CalculationService.compute_trend(10, None).change is None
