"""Derived chart geometry. Recomputed on every render, never mutated."""

from dataclasses import dataclass
from enum import StrEnum


class WeatherCategory(StrEnum):
    CLEAR = "clear"
    PARTLY = "partly"
    CLOUDY = "cloudy"
    RAIN = "rain"
    SNOW = "snow"
    SLEET = "sleet"
    FOG = "fog"


@dataclass(frozen=True)
class PlotArea:
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height


@dataclass(frozen=True)
class AxisDomains:
    temp_min: float
    temp_max: float
    wind_scale_max: float
    precip_step: float
    precip_scale_max: float

    @property
    def temp_range(self) -> float:
        return self.temp_max - self.temp_min


@dataclass(frozen=True)
class PointSegment:
    """Horizontal span owned by one point (midpoint to midpoint)."""
    start: float
    end: float


@dataclass(frozen=True)
class DaySegment:
    label: str  # e.g. "Fri 16 Oct"
    start_index: int
    end_index: int  # inclusive
    x_start: float
    x_end: float

    @property
    def x_center(self) -> float:
        return (self.x_start + self.x_end) / 2


@dataclass(frozen=True)
class PrecipBar:
    index: int
    x: float
    width: float
    y: float
    height: float
    max_y: float | None  # top of the hatched max-precipitation overlay
    over_max_label: str | None  # set when the value was clipped


@dataclass(frozen=True)
class ChartGeometry:
    plot: PlotArea
    domains: AxisDomains
    xs: tuple[float, ...]
    segments: tuple[PointSegment, ...]
    temp_ys: tuple[float | None, ...]
    wind_ys: tuple[float | None, ...]
    gust_ys: tuple[float | None, ...]
    bars: tuple[PrecipBar, ...]
    days: tuple[DaySegment, ...]
    day_boundaries: tuple[float, ...]
    sample_indices: tuple[int, ...]
    categories: tuple[WeatherCategory, ...]
    hour_labels: tuple[str, ...]
    temp_ticks: tuple[float, ...]
    wind_directions: tuple[float | None, ...] = ()
    title: str = ""
    degenerate: bool = False  # single-point series
