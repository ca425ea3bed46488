"""Chart layout: axis domains, pixel mappings, day segments and glyph sampling.

``compute_layout`` is a pure function of the point sequence and the chart
and style configuration; it returns a fresh ``ChartGeometry`` every time.
"""

import logging
import math
from collections.abc import Sequence
from datetime import UTC, date, datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from meteogram.chart.weather_category import classify_symbol
from meteogram.config.schema import ChartConfig, StyleConfig
from meteogram.models.chart import (
    AxisDomains,
    ChartGeometry,
    DaySegment,
    PlotArea,
    PointSegment,
    PrecipBar,
)
from meteogram.models.forecast import ForecastPoint

logger = logging.getLogger(__name__)

PRECIP_STEPS = (0.2, 0.5, 1.0, 2.0, 3.0, 5.0, 10.0)
MAX_PRECIP_TICKS = 5
MIN_WIND_SCALE = 4.0
TEMP_TICK_STEPS = (2, 4, 5, 10, 20)
MAX_TEMP_TICKS = 8
BAR_FILL_RATIO = 0.7

# Reserved bands around the plot area, in px
HEADER_HEIGHT = 48
FOOTER_HEIGHT = 40
LEFT_AXIS_WIDTH = 40
RIGHT_AXIS_WIDTH = 52

WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
MONTHS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def temperature_domain(temps: Sequence[float]) -> tuple[float, float]:
    """Pad by 2 degrees and snap outward to even numbers; never degenerate."""
    lo, hi = (min(temps), max(temps)) if temps else (0.0, 0.0)
    t_min = math.floor((lo - 2) / 2) * 2
    t_max = math.ceil((hi + 2) / 2) * 2
    if t_max <= t_min:
        t_min -= 2
        t_max += 2
    return float(t_min), float(t_max)


def wind_domain(speeds: Sequence[float]) -> float:
    observed = max(speeds) if speeds else 0.0
    return max(MIN_WIND_SCALE, float(math.ceil(observed + 1)))


def precipitation_step(observed_max: float) -> float:
    """Smallest "nice" step that needs at most MAX_PRECIP_TICKS ticks."""
    for step in PRECIP_STEPS:
        if observed_max / step <= MAX_PRECIP_TICKS:
            return step
    return PRECIP_STEPS[-1]


def precipitation_domain(observed_max: float) -> tuple[float, float]:
    """Return (step, scale max) for the precipitation axis.

    The scale max is the observed maximum rounded up to a multiple of the
    step, capped at MAX_PRECIP_TICKS steps of the largest step; a dry
    series gets three of the smallest steps.
    """
    if observed_max <= 0:
        step = PRECIP_STEPS[0]
        return step, round(3 * step, 6)
    step = precipitation_step(observed_max)
    scale_max = math.ceil(observed_max / step - 1e-9) * step
    scale_max = min(scale_max, MAX_PRECIP_TICKS * PRECIP_STEPS[-1])
    return step, round(scale_max, 6)


def temperature_ticks(t_min: float, t_max: float) -> tuple[float, ...]:
    span = t_max - t_min
    step = next((s for s in TEMP_TICK_STEPS if span / s <= MAX_TEMP_TICKS), TEMP_TICK_STEPS[-1])
    first = math.ceil(t_min / step) * step
    ticks = []
    value = first
    while value <= t_max:
        ticks.append(float(value))
        value += step
    return tuple(ticks)


def sample_indices(count: int, target: int) -> tuple[int, ...]:
    """Evenly strided indices, always including the last point."""
    if count <= 0:
        return ()
    stride = max(1, _round_half_up(count / target))
    indices = list(range(0, count, stride))
    if indices[-1] != count - 1:
        indices.append(count - 1)
    return tuple(indices)


def plot_area(chart: ChartConfig, style: StyleConfig) -> PlotArea:
    pad = style.padding
    return PlotArea(
        left=pad + LEFT_AXIS_WIDTH,
        top=pad + HEADER_HEIGHT,
        width=max(1.0, chart.width - 2 * pad - LEFT_AXIS_WIDTH - RIGHT_AXIS_WIDTH),
        height=max(1.0, chart.height - 2 * pad - HEADER_HEIGHT - FOOTER_HEIGHT),
    )


def x_positions(count: int, plot: PlotArea) -> tuple[float, ...]:
    if count == 1:
        return (plot.left + plot.width / 2,)
    return tuple(plot.left + plot.width * i / (count - 1) for i in range(count))


def point_segments(xs: Sequence[float], plot: PlotArea) -> tuple[PointSegment, ...]:
    """Each point owns the span between the midpoints to its neighbours."""
    segments = []
    last = len(xs) - 1
    for i, x in enumerate(xs):
        start = plot.left if i == 0 else (xs[i - 1] + x) / 2
        end = plot.right if i == last else (x + xs[i + 1]) / 2
        segments.append(PointSegment(start=start, end=end))
    return tuple(segments)


def map_temperature(value: float, domains: AxisDomains, plot: PlotArea) -> float:
    return plot.top + plot.height * (1 - (value - domains.temp_min) / domains.temp_range)


def map_clamped(value: float, scale_max: float, plot: PlotArea) -> float:
    clamped = min(max(value, 0.0), scale_max)
    return plot.top + plot.height * (1 - clamped / scale_max)


def resolve_timezone(name: str) -> tzinfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using UTC", name)
        return UTC


def day_label(day: date) -> str:
    return f"{WEEKDAYS[day.weekday()]} {day.day} {MONTHS[day.month - 1]}"


def day_segments(
    local_times: Sequence[datetime], segments: Sequence[PointSegment]
) -> tuple[DaySegment, ...]:
    """Group consecutive points by calendar date."""
    days: list[DaySegment] = []
    start = 0
    for i in range(1, len(local_times) + 1):
        if i < len(local_times) and local_times[i].date() == local_times[start].date():
            continue
        days.append(
            DaySegment(
                label=day_label(local_times[start].date()),
                start_index=start,
                end_index=i - 1,
                x_start=segments[start].start,
                x_end=segments[i - 1].end,
            )
        )
        start = i
    return tuple(days)


def _precip_bars(
    points: Sequence[ForecastPoint],
    segments: Sequence[PointSegment],
    domains: AxisDomains,
    plot: PlotArea,
    show_max: bool,
) -> tuple[PrecipBar, ...]:
    bars = []
    for i, (point, seg) in enumerate(zip(points, segments)):
        width = (seg.end - seg.start) * BAR_FILL_RATIO
        center = (seg.start + seg.end) / 2
        y = map_clamped(point.precipitation, domains.precip_scale_max, plot)
        max_y = None
        if show_max and point.precipitation_max is not None and point.precipitation_max > point.precipitation:
            max_y = map_clamped(point.precipitation_max, domains.precip_scale_max, plot)
        over = None
        if point.precipitation > domains.precip_scale_max:
            over = f"{point.precipitation:.1f}"
        if point.precipitation <= 0 and max_y is None:
            continue
        bars.append(
            PrecipBar(
                index=i,
                x=center - width / 2,
                width=width,
                y=y,
                height=plot.bottom - y,
                max_y=max_y,
                over_max_label=over,
            )
        )
    return tuple(bars)


def compute_domains(points: Sequence[ForecastPoint]) -> AxisDomains:
    temps = [p.temperature for p in points if p.temperature is not None]
    winds = [v for p in points for v in (p.wind_speed, p.wind_gust) if v is not None]
    precip_max = max((p.precipitation for p in points), default=0.0)

    t_min, t_max = temperature_domain(temps)
    step, scale_max = precipitation_domain(precip_max)
    return AxisDomains(
        temp_min=t_min,
        temp_max=t_max,
        wind_scale_max=wind_domain(winds),
        precip_step=step,
        precip_scale_max=scale_max,
    )


def compute_layout(
    points: Sequence[ForecastPoint],
    chart: ChartConfig | None = None,
    style: StyleConfig | None = None,
    title: str = "",
) -> ChartGeometry:
    """Convert a validated point sequence into chart geometry."""
    chart = chart or ChartConfig()
    style = style or StyleConfig()
    if not points:
        raise ValueError("Cannot lay out an empty forecast")

    plot = plot_area(chart, style)
    domains = compute_domains(points)
    xs = x_positions(len(points), plot)
    segments = point_segments(xs, plot)

    tz = resolve_timezone(chart.timezone)
    local_times = [p.timestamp.astimezone(tz) for p in points]
    days = day_segments(local_times, segments)

    def _temp(p: ForecastPoint) -> float | None:
        return None if p.temperature is None else map_temperature(p.temperature, domains, plot)

    def _wind(v: float | None) -> float | None:
        return None if v is None else map_clamped(v, domains.wind_scale_max, plot)

    return ChartGeometry(
        plot=plot,
        domains=domains,
        xs=xs,
        segments=segments,
        temp_ys=tuple(_temp(p) for p in points),
        wind_ys=tuple(_wind(p.wind_speed) for p in points),
        gust_ys=tuple(_wind(p.wind_gust) for p in points),
        bars=_precip_bars(points, segments, domains, plot, chart.show_max_precipitation),
        days=days,
        day_boundaries=tuple(d.x_start for d in days[1:]),
        sample_indices=sample_indices(len(points), chart.target_glyph_count),
        categories=tuple(classify_symbol(p.symbol_code) for p in points),
        hour_labels=tuple(f"{t.hour:02d}" for t in local_times),
        temp_ticks=temperature_ticks(domains.temp_min, domains.temp_max),
        wind_directions=tuple(p.wind_direction for p in points),
        title=title,
        degenerate=len(points) < 2,
    )
