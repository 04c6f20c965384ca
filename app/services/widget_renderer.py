"""
Widget rendering.

Maps a widget and its KPI data to a typed view model. Dispatch is closed over
WidgetType; anything else renders as a number widget. Rendering is pure: the
caller fetches KPI data and history.
"""
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import Field

from app.models import Widget, WidgetType
from app.schemas.common import CamelModel
from app.services.calculation_service import CalculationService

DEFAULT_IMAGE_ALT = "Dashboard image"
IMAGE_FITS = ("contain", "cover", "fill")


class ChartPoint(CamelModel):
    timestamp: datetime
    label: str
    value: float


class NumberView(CamelModel):
    kind: Literal["number"] = "number"
    title: Optional[str] = None
    value: Optional[float] = None
    formatted: str = "--"
    target: Optional[float] = None
    formatted_target: Optional[str] = None
    progress: Optional[float] = None
    progress_bar_percent: Optional[float] = None
    bar_color: Optional[str] = None
    error: Optional[str] = None


class StatView(CamelModel):
    kind: Literal["stat"] = "stat"
    title: Optional[str] = None
    value: Optional[float] = None
    formatted: str = "--"
    previous: Optional[float] = None
    change: Optional[float] = None
    direction: Optional[str] = None
    change_label: Optional[str] = None
    error: Optional[str] = None


class GaugeView(CamelModel):
    kind: Literal["gauge"] = "gauge"
    title: Optional[str] = None
    value: Optional[float] = None
    formatted: str = "--"
    target: Optional[float] = None
    percentage: float = 0
    tier: str = "danger"
    show_target: bool = True
    error: Optional[str] = None


class ChartView(CamelModel):
    kind: Literal["chart"] = "chart"
    title: Optional[str] = None
    chart_type: Literal["line", "bar", "area"]
    period: Optional[str] = None
    interval: Optional[str] = None
    points: list[ChartPoint] = []
    target_line: Optional[float] = None
    error: Optional[str] = None


class ImageView(CamelModel):
    kind: Literal["image"] = "image"
    title: Optional[str] = None
    image_url: Optional[str] = None
    alt: str = DEFAULT_IMAGE_ALT
    fit: str = "contain"


WidgetView = Annotated[
    Union[NumberView, StatView, GaugeView, ChartView, ImageView],
    Field(discriminator="kind"),
]


def format_value(value: Optional[float], fmt: Optional[str] = None) -> str:
    """
    Display formatting for KPI values.

    currency -> $1,235 (whole dollars), percent -> 12.3%,
    otherwise compact: 1.2M, 1.2K or thousands separated.
    """
    if value is None:
        return "--"
    if fmt == "currency":
        sign = "-" if value < 0 else ""
        return f"{sign}${abs(value):,.0f}"
    if fmt == "percent":
        return f"{value:.1f}%"
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{value / 1_000:.1f}K"

    text = f"{value:,.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def format_label(timestamp: datetime, interval: Optional[str]) -> str:
    """Axis label for a history point. The interval affects labels only."""
    if interval == "hourly":
        return timestamp.strftime("%H:%M")
    if interval == "monthly":
        return timestamp.strftime("%b '%y")
    return f"{timestamp.strftime('%b')} {timestamp.day}"


def gauge_tier(percentage: float) -> str:
    if percentage >= 100:
        return "success"
    if percentage >= 75:
        return "primary"
    if percentage >= 50:
        return "warning"
    return "danger"


def progress_bar_color(progress: float) -> str:
    if progress >= 100:
        return "green"
    if progress >= 75:
        return "violet"
    if progress >= 50:
        return "yellow"
    return "red"


def clamp(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))


def change_label(change: Optional[float]) -> Optional[str]:
    if change is None:
        return None
    sign = "+" if change > 0 else ""
    return f"{sign}{change:.1f}%"


def _render_number(config: dict, kpi_data: dict) -> NumberView:
    fmt = config.get("format")
    value = kpi_data.get("current_value")
    view = NumberView(
        title=config.get("title"),
        value=value,
        formatted=format_value(value, fmt),
        error=kpi_data.get("error"),
    )

    target = kpi_data.get("target_value")
    if config.get("showTarget", True) and target is not None:
        view.target = target
        view.formatted_target = format_value(target, fmt)
        progress = kpi_data.get("progress")
        if progress is None and value is not None and target:
            progress = round(value / target * 100, 1)
        if progress is not None:
            view.progress = progress
            view.progress_bar_percent = clamp(progress)
            view.bar_color = progress_bar_color(progress)
    return view


def _render_stat(config: dict, kpi_data: dict, history: Optional[dict]) -> StatView:
    value = kpi_data.get("current_value")
    comparison = (history or {}).get("comparison") or {}
    previous = comparison.get("previous_value")

    trend = CalculationService.compute_trend(previous, value)
    return StatView(
        title=config.get("title"),
        value=value,
        formatted=format_value(value, config.get("format")),
        previous=previous,
        change=trend.change,
        direction=trend.direction,
        change_label=change_label(trend.change),
        error=kpi_data.get("error"),
    )


def _render_gauge(config: dict, kpi_data: dict) -> GaugeView:
    value = kpi_data.get("current_value")
    target = kpi_data.get("target_value")

    if value is None:
        percentage = 0.0
    elif target:
        percentage = clamp(value / target * 100)
    else:
        percentage = clamp(value)

    show_target = bool(config.get("showTarget", True))
    return GaugeView(
        title=config.get("title"),
        value=value,
        formatted=format_value(value, config.get("format")),
        target=target if show_target else None,
        percentage=round(percentage, 1),
        tier=gauge_tier(percentage),
        show_target=show_target,
        error=kpi_data.get("error"),
    )


def _render_chart(widget_type: str, config: dict, kpi_data: dict, history: Optional[dict]) -> ChartView:
    history = history or {}
    interval = history.get("interval")
    points = [
        ChartPoint(
            timestamp=point["timestamp"],
            label=format_label(point["timestamp"], interval),
            value=point["value"],
        )
        for point in history.get("data", [])
    ]

    target_line = None
    if widget_type == WidgetType.LINE.value and config.get("showTarget", True):
        target_line = kpi_data.get("target_value")

    return ChartView(
        title=config.get("title"),
        chart_type=widget_type,
        period=history.get("period") or config.get("period"),
        interval=interval,
        points=points,
        target_line=target_line,
        error=kpi_data.get("error"),
    )


def _render_image(config: dict) -> ImageView:
    fit = config.get("objectFit", "contain")
    return ImageView(
        title=config.get("title"),
        image_url=config.get("imageUrl"),
        alt=config.get("altText") or DEFAULT_IMAGE_ALT,
        fit=fit if fit in IMAGE_FITS else "contain",
    )


def render(widget: Widget, kpi_data: Optional[dict], history: Optional[dict] = None) -> WidgetView:
    """
    Render a widget to its view model.

    ``kpi_data`` has the keys current_value, target_value, progress, on_track
    and error. ``history`` is a KPI history result, needed by stat and chart
    widgets.
    """
    config = widget.config or {}
    kpi_data = kpi_data or {}
    widget_type = widget.type

    if widget_type == WidgetType.IMAGE.value:
        return _render_image(config)
    if widget_type == WidgetType.STAT.value:
        return _render_stat(config, kpi_data, history)
    if widget_type == WidgetType.GAUGE.value:
        return _render_gauge(config, kpi_data)
    if widget_type in (WidgetType.LINE.value, WidgetType.BAR.value, WidgetType.AREA.value):
        return _render_chart(widget_type, config, kpi_data, history)
    # number, and any type this renderer does not know
    return _render_number(config, kpi_data)


def needs_history(widget_type: Any) -> bool:
    """Stat and chart widgets render from a history fetch."""
    return widget_type in (
        WidgetType.STAT.value,
        WidgetType.LINE.value,
        WidgetType.BAR.value,
        WidgetType.AREA.value,
    )
