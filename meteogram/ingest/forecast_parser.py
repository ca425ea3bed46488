"""Parse a locationforecast JSON document into an ordered point sequence."""

import json
import logging
import math
from datetime import UTC, datetime
from typing import Any

from meteogram.models.errors import ParseError
from meteogram.models.forecast import ForecastPoint, ForecastSeries

logger = logging.getLogger(__name__)

DEFAULT_MAX_SAMPLES = 48
MIN_POINTS = 2

# (summary block, hours covered); order is the precipitation fallback chain
SUMMARY_BLOCKS = (
    ("next_1_hours", 1),
    ("next_6_hours", 6),
    ("next_12_hours", 12),
)


def _parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO timestamp, treating naive values as UTC."""
    if not isinstance(value, str) or not value:
        return None
    try:
        ts = datetime.fromisoformat(value)
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts


def _finite(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _non_negative(value: Any) -> float | None:
    number = _finite(value)
    if number is None or number < 0:
        return None
    return number


def _block(data: dict, name: str) -> dict:
    block = data.get(name)
    return block if isinstance(block, dict) else {}


def _per_hour_amount(data: dict, field: str) -> float | None:
    """First available amount along the 1h -> 6h/6 -> 12h/12 chain."""
    for name, hours in SUMMARY_BLOCKS:
        details = _block(_block(data, name), "details")
        amount = _finite(details.get(field))
        if amount is not None:
            return amount / hours
    return None


def _symbol_code(data: dict) -> str | None:
    for name, _hours in SUMMARY_BLOCKS:
        code = _block(_block(data, name), "summary").get("symbol_code")
        if isinstance(code, str) and code.strip():
            return code.strip()
    return None


def parse_sample(sample: Any) -> ForecastPoint | None:
    """Convert one timeseries entry. Returns None if its timestamp is unusable."""
    if not isinstance(sample, dict):
        return None
    timestamp = _parse_timestamp(sample.get("time"))
    if timestamp is None:
        return None

    data = sample.get("data")
    data = data if isinstance(data, dict) else {}
    details = _block(_block(data, "instant"), "details")

    direction = _finite(details.get("wind_from_direction"))
    if direction is not None:
        direction = direction % 360.0

    precipitation = max(0.0, _per_hour_amount(data, "precipitation_amount") or 0.0)
    precipitation_max = _per_hour_amount(data, "precipitation_amount_max")
    if precipitation_max is not None:
        precipitation_max = max(precipitation, precipitation_max)

    return ForecastPoint(
        timestamp=timestamp,
        temperature=_finite(details.get("air_temperature")),
        wind_speed=_non_negative(details.get("wind_speed")),
        wind_gust=_non_negative(details.get("wind_speed_of_gust")),
        wind_direction=direction,
        precipitation=precipitation,
        precipitation_max=precipitation_max,
        symbol_code=_symbol_code(data),
    )


def parse_forecast(
    document: dict | str | bytes, max_samples: int = DEFAULT_MAX_SAMPLES
) -> ForecastSeries:
    """Parse a structured forecast document.

    Only the first ``max_samples`` entries are considered. Raises
    ParseError if the series is missing or empty, or if fewer than two
    points survive timestamp validation.
    """
    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except ValueError as e:
            raise ParseError("Forecast response is not valid JSON.") from e
    if not isinstance(document, dict):
        raise ParseError("Forecast response is not a JSON object.")

    properties = document.get("properties")
    timeseries = properties.get("timeseries") if isinstance(properties, dict) else None
    if not isinstance(timeseries, list) or not timeseries:
        raise ParseError("Forecast response contains no timeseries.")

    points: list[ForecastPoint] = []
    dropped = 0
    for sample in timeseries[:max_samples]:
        point = parse_sample(sample)
        if point is None:
            dropped += 1
            continue
        points.append(point)

    if dropped:
        logger.warning("Dropped %d forecast samples with invalid timestamps", dropped)
    if len(points) < MIN_POINTS:
        raise ParseError(
            f"Forecast has {len(points)} usable samples, at least {MIN_POINTS} required."
        )

    lon, lat, alt = _geometry(document)
    meta = properties.get("meta") if isinstance(properties.get("meta"), dict) else {}
    return ForecastSeries(
        points=tuple(points),
        latitude=lat,
        longitude=lon,
        altitude=alt,
        updated_at=str(meta.get("updated_at") or ""),
    )


def _geometry(document: dict) -> tuple[float | None, float | None, float | None]:
    """Return (longitude, latitude, altitude) from the GeoJSON geometry."""
    geometry = document.get("geometry")
    coords = geometry.get("coordinates") if isinstance(geometry, dict) else None
    if not isinstance(coords, list) or len(coords) < 2:
        return None, None, None
    alt = _finite(coords[2]) if len(coords) > 2 else None
    return _finite(coords[0]), _finite(coords[1]), alt
