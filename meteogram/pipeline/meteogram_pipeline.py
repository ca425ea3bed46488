"""Per-instance orchestration: source -> fetch -> chart -> sanitized SVG.

A ``MeteogramPipeline`` owns everything one widget instance needs: the
fetch controller (and with it the cache validators), the periodic refresh
timer, the retained last good payload and the host-visible status. At most
one fetch cycle is current; starting a new one cancels the previous task
and any late result from an older generation is discarded.
"""

import asyncio
import logging
from collections.abc import Callable

import httpx

from meteogram.chart.layout import compute_layout
from meteogram.chart.renderer import location_title, render_svg
from meteogram.chart.sanitizer import extract_svg_markup, sanitize_svg
from meteogram.config.defaults import DEFAULT_METEOGRAM_SVG, DEFAULT_USER_AGENT
from meteogram.config.schema import MeteogramConfig, SourceConfig, fetch_signature
from meteogram.ingest.fetch_controller import FetchController
from meteogram.ingest.forecast_parser import parse_forecast
from meteogram.ingest.url_resolver import normalize_url, resolve_fetch_target
from meteogram.models.common import utc_now_iso
from meteogram.models.errors import (
    InvalidVector,
    MeteogramError,
    MissingIdentification,
    ParseError,
)
from meteogram.models.fetch import FetchOutcome, FetchState, TargetKind
from meteogram.models.forecast import ForecastSeries
from meteogram.models.status import OutputOrigin, RenderState, WidgetStatus
from meteogram.pipeline.timers import RepeatingTimer

logger = logging.getLogger(__name__)

NO_SOURCE_MESSAGE = "Please configure a Source URL or provide Fallback SVG Code."
LOAD_FAILED_MESSAGE = "Unable to load meteogram from source."
UNEXPECTED_MESSAGE = "Unexpected error while loading the meteogram."

StatusListener = Callable[[WidgetStatus], None]


def effective_user_agent(source: SourceConfig) -> str:
    """Configured identification, the built-in default if unset.

    A configured value that is blank raises MissingIdentification.
    """
    if source.user_agent is None:
        return DEFAULT_USER_AGENT
    user_agent = source.user_agent.strip()
    if not user_agent:
        raise MissingIdentification(
            "Please configure a valid API User-Agent before fetching data."
        )
    return user_agent


def fallback_candidates(source: SourceConfig) -> list[tuple[str, OutputOrigin]]:
    """Static documents to try in order: caller-supplied, then built-in."""
    candidates = []
    code = source.svg_code.strip()
    if code and not code.startswith("<!--"):
        candidates.append((code, OutputOrigin.FALLBACK))
    if source.use_builtin_placeholder:
        candidates.append((DEFAULT_METEOGRAM_SVG, OutputOrigin.PLACEHOLDER))
    return candidates


class MeteogramPipeline:
    def __init__(
        self,
        config: MeteogramConfig,
        client: httpx.AsyncClient | None = None,
        on_update: StatusListener | None = None,
    ):
        self.config = config
        self.controller = FetchController.from_config(config.fetch, client)
        self.refresh_timer = RepeatingTimer("refresh")
        self._on_update = on_update
        self._status = WidgetStatus(state=RenderState.IDLE)
        self._cycle_task: asyncio.Task | None = None
        self._generation = 0
        self._retained_forecast: str | None = None
        self._retained_vector: str | None = None

    # --- Host-facing API ---

    @property
    def status(self) -> WidgetStatus:
        return self._status

    @property
    def effective_source_url(self) -> str | None:
        return normalize_url(self.config.source.source_url)

    async def start(self) -> WidgetStatus:
        """First cycle plus the periodic refresh schedule."""
        status = await self.run_cycle()
        await self._reschedule()
        return status

    async def refresh(self) -> WidgetStatus:
        """Manual retry from the host."""
        return await self.run_cycle()

    async def apply_config(self, config: MeteogramConfig) -> WidgetStatus:
        """Swap in a new configuration.

        Fetch-relevant changes tear down the refresh timer, start a new
        cycle and recreate the timer. Source or identification changes also
        discard the cache validators. Chart and style changes re-render the
        retained output without any network traffic; a retained forecast is
        reparsed so a new sample window applies.
        """
        previous, self.config = self.config, config
        if previous.fetch != config.fetch:
            self.controller.timeout = config.fetch.timeout_seconds
            self.controller.max_attempts = config.fetch.max_attempts
            self.controller.retry_base_delay = config.fetch.retry_base_delay_seconds

        if fetch_signature(previous) != fetch_signature(config):
            if (
                previous.source.source_url != config.source.source_url
                or previous.source.user_agent != config.source.user_agent
            ):
                self.controller.reset()
            else:
                self.controller.rearm_warnings()
            await self.refresh_timer.cancel()
            status = await self.run_cycle()
            await self._reschedule()
            return status

        if previous != config:
            self._rerender()
        return self._status

    async def shutdown(self) -> None:
        await self.refresh_timer.cancel()
        await self._cancel_cycle()
        await self.controller.aclose()

    # --- Cycle management ---

    async def start_cycle(self) -> asyncio.Task:
        """Supersede any in-flight cycle and start a new one."""
        await self._cancel_cycle()
        self._generation += 1
        task = asyncio.create_task(self._cycle(self._generation))
        self._cycle_task = task
        return task

    async def run_cycle(self) -> WidgetStatus:
        task = await self.start_cycle()
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.info("Fetch cycle superseded")
        return self._status

    async def _cancel_cycle(self) -> None:
        task, self._cycle_task = self._cycle_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise

    async def _reschedule(self) -> None:
        src = self.config.source
        interval = None
        if src.auto_refresh_enabled and self.effective_source_url:
            try:
                effective_user_agent(src)
                interval = src.refresh_interval_minutes * 60
            except MissingIdentification:
                interval = None
        await self.refresh_timer.replace(interval, self._refresh_tick)

    async def _refresh_tick(self) -> None:
        logger.info("Periodic refresh")
        await self.run_cycle()

    async def _cycle(self, generation: int) -> None:
        source = self.config.source
        normalized = normalize_url(source.source_url)
        if normalized is None:
            self._show_fallback(generation, no_source=True)
            return

        try:
            user_agent = effective_user_agent(source)
            target = resolve_fetch_target(normalized)
            self._set_status(
                generation,
                WidgetStatus(
                    state=RenderState.LOADING,
                    svg=self._status.svg,
                    origin=self._status.origin,
                    fetch_state=FetchState.FETCHING,
                ),
            )
            outcome = await self.controller.fetch(target, user_agent)
        except MeteogramError as e:
            logger.error("Fetch cycle aborted: %s", e.message)
            self._set_status(
                generation,
                WidgetStatus(state=RenderState.ERROR, message=e.message, can_retry=True),
            )
            return
        except asyncio.CancelledError:
            logger.debug("Cycle %d cancelled", generation)
            raise
        except Exception:
            logger.exception("Fetch cycle crashed")
            self._set_status(
                generation,
                WidgetStatus(state=RenderState.ERROR, message=UNEXPECTED_MESSAGE, can_retry=True),
            )
            return

        self._apply_outcome(generation, outcome)

    def _apply_outcome(self, generation: int, outcome: FetchOutcome) -> None:
        if outcome.state == FetchState.NOT_MODIFIED:
            if self._status.svg is None:
                self._degrade(generation, None, FetchState.NOT_MODIFIED)
                return
            self._set_status(
                generation,
                WidgetStatus(
                    state=RenderState.READY,
                    svg=self._status.svg,
                    origin=self._status.origin,
                    fetch_state=FetchState.NOT_MODIFIED,
                ),
            )
            return

        if outcome.state == FetchState.FAILED:
            self._degrade(generation, outcome.error, FetchState.FAILED)
            return

        try:
            svg = self._render_payload(outcome)
        except (ParseError, InvalidVector) as e:
            logger.error("Unusable payload from %s: %s", outcome.target.request_url, e.message)
            self._degrade(generation, e, FetchState.FAILED)
            return

        self._set_status(
            generation,
            WidgetStatus(
                state=RenderState.READY,
                svg=svg,
                origin=OutputOrigin.LIVE,
                fetch_state=FetchState.SUCCESS,
            ),
        )

    # --- Rendering ---

    def _render_payload(self, outcome: FetchOutcome) -> str:
        payload = outcome.payload or ""
        if outcome.target.kind == TargetKind.STRUCTURED_FORECAST:
            series = parse_forecast(payload, self.config.chart.max_samples)
            svg = self._render_series(series)
            self._retained_forecast, self._retained_vector = payload, None
            return svg

        markup = extract_svg_markup(payload)
        svg = sanitize_svg(markup, self.config.style.overall_background)
        self._retained_forecast, self._retained_vector = None, markup
        return svg

    def _render_series(self, series: ForecastSeries) -> str:
        geometry = compute_layout(
            series.points,
            self.config.chart,
            self.config.style,
            title=location_title(series.latitude, series.longitude),
        )
        markup = render_svg(geometry, self.config.style, self.config.chart)
        return sanitize_svg(markup, self.config.style.overall_background)

    def _render_retained(self) -> str | None:
        try:
            if self._retained_forecast is not None:
                # reparsed so a changed sample window applies
                series = parse_forecast(self._retained_forecast, self.config.chart.max_samples)
                return self._render_series(series)
            if self._retained_vector is not None:
                return sanitize_svg(self._retained_vector, self.config.style.overall_background)
        except (ParseError, InvalidVector) as e:
            logger.warning("Retained output no longer renders: %s", e.message)
        return None

    def _rerender(self) -> None:
        """Re-theme whatever is currently displayed."""
        origin = self._status.origin
        if origin in (OutputOrigin.LIVE, OutputOrigin.RETAINED):
            svg = self._render_retained()
            if svg is not None:
                self._set_status(
                    self._generation,
                    WidgetStatus(
                        state=self._status.state,
                        svg=svg,
                        origin=origin,
                        fetch_state=self._status.fetch_state,
                    ),
                )
                return
        if origin in (OutputOrigin.FALLBACK, OutputOrigin.PLACEHOLDER) or self._status.state == RenderState.IDLE:
            self._show_fallback(self._generation, no_source=not self.effective_source_url)

    def _degrade(
        self, generation: int, error: MeteogramError | None, fetch_state: FetchState
    ) -> None:
        """Last good output, else fallback content, else a retryable error."""
        svg = self._render_retained()
        if svg is not None:
            logger.info("Showing last successfully rendered meteogram")
            self._set_status(
                generation,
                WidgetStatus(
                    state=RenderState.READY,
                    svg=svg,
                    origin=OutputOrigin.RETAINED,
                    fetch_state=fetch_state,
                ),
            )
            return
        if self._show_fallback(generation, fetch_state=fetch_state):
            return
        if error is not None:
            logger.error("No fallback available: %s", error.message)
        self._set_status(
            generation,
            WidgetStatus(
                state=RenderState.ERROR,
                message=LOAD_FAILED_MESSAGE,
                can_retry=True,
                fetch_state=fetch_state,
            ),
        )

    def _show_fallback(
        self,
        generation: int,
        no_source: bool = False,
        fetch_state: FetchState = FetchState.IDLE,
    ) -> bool:
        for markup, origin in fallback_candidates(self.config.source):
            try:
                svg = sanitize_svg(markup, self.config.style.overall_background)
            except InvalidVector as e:
                logger.warning("%s SVG is unusable: %s", origin.value.capitalize(), e.message)
            else:
                self._set_status(
                    generation,
                    WidgetStatus(
                        state=RenderState.READY, svg=svg, origin=origin, fetch_state=fetch_state
                    ),
                )
                return True
        if no_source:
            self._set_status(
                generation,
                WidgetStatus(state=RenderState.IDLE, message=NO_SOURCE_MESSAGE),
            )
            return True
        return False

    def _set_status(self, generation: int, status: WidgetStatus) -> None:
        if generation != self._generation:
            logger.debug("Discarding stale result from cycle %d", generation)
            return
        self._status = WidgetStatus(
            state=status.state,
            svg=status.svg,
            message=status.message,
            can_retry=status.can_retry,
            origin=status.origin,
            fetch_state=status.fetch_state,
            updated_at=utc_now_iso(),
        )
        if self._on_update is not None:
            self._on_update(self._status)
