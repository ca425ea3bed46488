"""Pydantic v2 configuration schema with strict validation."""

from pydantic import BaseModel, Field


class SourceConfig(BaseModel):
    model_config = {"extra": "forbid"}

    source_url: str = ""
    user_agent: str | None = None  # None -> DEFAULT_USER_AGENT
    auto_refresh_enabled: bool = False
    refresh_interval_minutes: float = Field(default=30.0, gt=0.0)
    svg_code: str = ""  # caller-supplied fallback vector document
    use_builtin_placeholder: bool = True


class FetchConfig(BaseModel):
    model_config = {"extra": "forbid"}

    timeout_seconds: float = Field(default=15.0, gt=0.0)
    max_attempts: int = Field(default=5, ge=1, le=10)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0.0)


class ChartConfig(BaseModel):
    model_config = {"extra": "forbid"}

    width: int = Field(default=900, ge=200)
    height: int = Field(default=340, ge=150)
    max_samples: int = Field(default=48, ge=2, le=240)
    target_glyph_count: int = Field(default=18, ge=16, le=20)
    timezone: str = "UTC"
    show_max_precipitation: bool = True


class StyleConfig(BaseModel):
    model_config = {"extra": "forbid"}

    overall_background: str = "#ffffff"
    padding: int = Field(default=10, ge=0)
    main_text_color: str = "#21292b"
    secondary_text_color: str = "#56616c"
    y_axis_icon_color: str = "#56616c"
    logo_color: str = "#00b8f1"
    grid_line_color: str = "#c3d0d8"
    grid_line_width: float = Field(default=1.0, ge=0.0)
    grid_line_opacity: float = Field(default=1.0, ge=0.0, le=1.0)
    temperature_line_color: str = "#c60000"
    wind_line_color: str = "#aa00f2"
    wind_gust_line_color: str = "#aa00f2"
    precipitation_bar_color: str = "#006edb"
    max_precipitation_color: str = "#006edb"


class MeteogramConfig(BaseModel):
    model_config = {"extra": "forbid"}

    source: SourceConfig = SourceConfig()
    fetch: FetchConfig = FetchConfig()
    chart: ChartConfig = ChartConfig()
    style: StyleConfig = StyleConfig()


def fetch_signature(config: MeteogramConfig) -> tuple:
    """Fields whose change requires a new fetch cycle and a new refresh timer."""
    src = config.source
    return (
        src.source_url,
        src.auto_refresh_enabled,
        src.refresh_interval_minutes,
        src.user_agent,
    )
