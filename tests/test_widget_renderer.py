"""Tests for widget view rendering."""

from datetime import datetime

import pytest

from app.models import Widget
from app.services import widget_renderer
from app.services.widget_renderer import (
    ChartView,
    GaugeView,
    ImageView,
    NumberView,
    StatView,
    format_label,
    format_value,
    gauge_tier,
    progress_bar_color,
)


def kpi_data(current=None, target=None, progress=None, error=None):
    return {
        "current_value": current,
        "target_value": target,
        "progress": progress,
        "on_track": None,
        "error": error,
    }


class TestFormatting:
    @pytest.mark.parametrize(
        "value,fmt,expected",
        [
            (None, None, "--"),
            (1234.56, "currency", "$1,235"),
            (-50, "currency", "-$50"),
            (12.345, "percent", "12.3%"),
            (1_250_000, None, "1.2M"),
            (1_250, None, "1.2K"),
            (999, None, "999"),
            (12.5, None, "12.5"),
            (0, None, "0"),
        ],
    )
    def test_format_value(self, value, fmt, expected):
        assert format_value(value, fmt) == expected

    def test_labels_follow_interval(self):
        moment = datetime(2024, 3, 5, 14, 30)
        assert format_label(moment, "hourly") == "14:30"
        assert format_label(moment, "daily") == "Mar 5"
        assert format_label(moment, "weekly") == "Mar 5"
        assert format_label(moment, "monthly") == "Mar '24"

    @pytest.mark.parametrize(
        "percentage,tier,color",
        [(120, "success", "green"), (100, "success", "green"), (80, "primary", "violet"),
         (50, "warning", "yellow"), (49.9, "danger", "red")],
    )
    def test_thresholds(self, percentage, tier, color):
        assert gauge_tier(percentage) == tier
        assert progress_bar_color(percentage) == color


class TestNumberWidget:
    def test_with_target(self):
        widget = Widget(type="number", config={"title": "Revenue", "format": "currency"})

        view = widget_renderer.render(widget, kpi_data(current=150, target=100, progress=150.0))

        assert isinstance(view, NumberView)
        assert view.formatted == "$150"
        assert view.formatted_target == "$100"
        assert view.progress == 150.0
        assert view.progress_bar_percent == 100
        assert view.bar_color == "green"

    def test_target_hidden(self):
        widget = Widget(type="number", config={"showTarget": False})

        view = widget_renderer.render(widget, kpi_data(current=50, target=100, progress=50.0))

        assert view.target is None
        assert view.progress is None
        assert view.bar_color is None

    def test_error_renders_placeholder(self):
        widget = Widget(type="number", config={})

        view = widget_renderer.render(widget, kpi_data(error="Missing data for: revenue"))

        assert view.formatted == "--"
        assert view.error == "Missing data for: revenue"

    def test_unknown_type_falls_back_to_number(self):
        view = widget_renderer.render(Widget(type="sparkline", config={}), kpi_data(current=3))
        assert isinstance(view, NumberView)


class TestGaugeWidget:
    @pytest.mark.parametrize(
        "current,target,percentage,tier",
        [(80, 100, 80.0, "primary"), (150, 100, 100.0, "success"), (-5, 100, 0.0, "danger"), (42, None, 42.0, "danger")],
    )
    def test_percentage_clamped(self, current, target, percentage, tier):
        view = widget_renderer.render(Widget(type="gauge", config={}), kpi_data(current=current, target=target))

        assert isinstance(view, GaugeView)
        assert view.percentage == percentage
        assert view.tier == tier

    def test_no_value(self):
        view = widget_renderer.render(Widget(type="gauge", config={}), kpi_data(target=100))
        assert view.percentage == 0
        assert view.formatted == "--"


class TestStatWidget:
    def test_change_against_history(self):
        history = {"comparison": {"previous_value": 200, "current_value": 250}}

        view = widget_renderer.render(Widget(type="stat", config={}), kpi_data(current=250), history)

        assert isinstance(view, StatView)
        assert view.previous == 200
        assert view.change == 25.0
        assert view.direction == "up"
        assert view.change_label == "+25.0%"

    def test_without_history(self):
        view = widget_renderer.render(Widget(type="stat", config={}), kpi_data(current=250))
        assert view.change is None
        assert view.change_label is None


class TestChartWidget:
    @pytest.fixture
    def history(self):
        return {
            "period": "7d",
            "interval": "daily",
            "data": [
                {"timestamp": datetime(2024, 3, 4), "value": 10.0},
                {"timestamp": datetime(2024, 3, 5), "value": 12.5},
            ],
        }

    def test_line_has_target(self, history):
        view = widget_renderer.render(Widget(type="line", config={}), kpi_data(target=20), history)

        assert isinstance(view, ChartView)
        assert view.chart_type == "line"
        assert [p.label for p in view.points] == ["Mar 4", "Mar 5"]
        assert view.target_line == 20

    def test_bar_has_no_target(self, history):
        view = widget_renderer.render(Widget(type="bar", config={}), kpi_data(target=20), history)
        assert view.target_line is None
        assert view.period == "7d"

    def test_no_history(self):
        view = widget_renderer.render(Widget(type="area", config={"period": "30d"}), kpi_data())
        assert view.points == []
        assert view.period == "30d"


class TestImageWidget:
    def test_defaults(self):
        view = widget_renderer.render(
            Widget(type="image", config={"imageUrl": "https://example.com/a.png", "objectFit": "zoom"}),
            None,
        )

        assert isinstance(view, ImageView)
        assert view.alt == "Dashboard image"
        assert view.fit == "contain"

    def test_custom_alt_and_fit(self):
        view = widget_renderer.render(
            Widget(type="image", config={"imageUrl": "https://example.com/a.png", "altText": "Logo", "objectFit": "cover"}),
            None,
        )
        assert view.alt == "Logo"
        assert view.fit == "cover"


def test_needs_history():
    assert widget_renderer.needs_history("stat")
    assert widget_renderer.needs_history("line")
    assert not widget_renderer.needs_history("number")
    assert not widget_renderer.needs_history("image")
