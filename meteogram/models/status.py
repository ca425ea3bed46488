"""Host-visible widget status."""

from dataclasses import dataclass
from enum import StrEnum

from meteogram.models.fetch import FetchState


class RenderState(StrEnum):
    IDLE = "idle"  # nothing configured, nothing to show
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class OutputOrigin(StrEnum):
    LIVE = "live"
    RETAINED = "retained"  # last successfully fetched payload
    FALLBACK = "fallback"  # caller-supplied svg_code
    PLACEHOLDER = "placeholder"  # built-in document


@dataclass(frozen=True)
class WidgetStatus:
    state: RenderState
    svg: str | None = None
    message: str | None = None
    can_retry: bool = False
    origin: OutputOrigin | None = None
    fetch_state: FetchState = FetchState.IDLE
    updated_at: str | None = None
