"""Shared test fixtures."""

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import yaml

from meteogram.config.schema import FetchConfig, MeteogramConfig, SourceConfig
from meteogram.models.forecast import ForecastPoint

FIXTURE_DIR = Path(__file__).parent / "fixtures"

FORECAST_URL = (
    "https://api.met.no/weatherapi/locationforecast/2.0/complete"
    "?lat=59.9139&lon=10.7522"
)
PORTAL_URL = "https://www.yr.no/en/content/59.9139,10.7522/meteogram.svg"


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the path to the test fixtures directory."""
    return FIXTURE_DIR


@pytest.fixture
def oslo_forecast() -> dict:
    with open(FIXTURE_DIR / "locationforecast_oslo.json") as f:
        return json.load(f)


@pytest.fixture
def portal_svg() -> str:
    return (FIXTURE_DIR / "meteogram_portal.svg").read_text()


@pytest.fixture
def default_config() -> MeteogramConfig:
    return MeteogramConfig()


@pytest.fixture
def fast_config() -> MeteogramConfig:
    """Config pointing at the Oslo forecast with near-zero retry delays."""
    return MeteogramConfig(
        source=SourceConfig(source_url=PORTAL_URL),
        fetch=FetchConfig(max_attempts=3, retry_base_delay_seconds=0.0),  # Fast retries in tests
    )


@pytest.fixture
def config_yaml_path(tmp_path: Path) -> Path:
    """Write a minimal valid config YAML and return its path."""
    data = {
        "source": {"source_url": PORTAL_URL, "refresh_interval_minutes": 10},
        "style": {"overall_background": "#000000"},
    }
    path = tmp_path / "test_config.yaml"
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path


def make_points(
    temps: list[float | None],
    precip: list[float] | None = None,
    start: datetime = datetime(2026, 10, 16, 20, tzinfo=UTC),
    symbol: str | None = "cloudy",
) -> list[ForecastPoint]:
    """Hourly points starting at ``start``."""
    precip = precip or [0.0] * len(temps)
    return [
        ForecastPoint(
            timestamp=start + timedelta(hours=i),
            temperature=t,
            wind_speed=3.0,
            wind_gust=6.0,
            wind_direction=200.0,
            precipitation=p,
            precipitation_max=None,
            symbol_code=symbol,
        )
        for i, (t, p) in enumerate(zip(temps, precip))
    ]


@pytest.fixture
def hourly_points() -> list[ForecastPoint]:
    return make_points([8.0, 7.5, 7.0, 6.0, 5.5, 5.0], [0.0, 0.4, 3.4, 1.1, 0.0, 0.0])


@pytest.fixture
def point_factory():
    return make_points
