"""Normalized forecast data models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ForecastPoint:
    timestamp: datetime  # timezone-aware
    temperature: float | None
    wind_speed: float | None
    wind_gust: float | None
    wind_direction: float | None  # [0, 360)
    precipitation: float  # mm, >= 0
    precipitation_max: float | None  # mm, >= precipitation
    symbol_code: str | None


@dataclass(frozen=True)
class ForecastSeries:
    points: tuple[ForecastPoint, ...]
    latitude: float | None = None
    longitude: float | None = None
    altitude: float | None = None
    updated_at: str = ""

    def __len__(self) -> int:
        return len(self.points)
