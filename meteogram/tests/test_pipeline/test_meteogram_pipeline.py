"""Tests for the fetch -> chart -> sanitize pipeline with mocked httpx."""

import asyncio
import logging
import xml.etree.ElementTree as ET
from pathlib import Path

import httpx
import pytest
import respx

from meteogram.config.defaults import DEFAULT_USER_AGENT
from meteogram.config.schema import ChartConfig, MeteogramConfig, SourceConfig, StyleConfig
from meteogram.models.fetch import FetchState
from meteogram.models.status import OutputOrigin, RenderState
from meteogram.pipeline.meteogram_pipeline import (
    LOAD_FAILED_MESSAGE,
    NO_SOURCE_MESSAGE,
    MeteogramPipeline,
    effective_user_agent,
    fallback_candidates,
)

FIXTURE_DIR = Path(__file__).parent.parent / "fixtures"

FORECAST_URL = (
    "https://api.met.no/weatherapi/locationforecast/2.0/complete"
    "?lat=59.9139&lon=10.7522"
)
RAW_SOURCE = "https://example.com/meteogram.svg"
RAW_ROUTE = {"host": "example.com", "path": "/meteogram.svg"}
FALLBACK = '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 4 4"><text>fallback</text></svg>'


@pytest.fixture
def oslo_body() -> str:
    return (FIXTURE_DIR / "locationforecast_oslo.json").read_text()


def with_source(config: MeteogramConfig, **source) -> MeteogramConfig:
    return config.model_copy(update={"source": config.source.model_copy(update=source)})


def run(config: MeteogramConfig, scenario, **kwargs):
    """Run ``scenario(pipeline)`` on a fresh pipeline and shut it down."""
    async def _main():
        pipeline = MeteogramPipeline(config, **kwargs)
        try:
            return await scenario(pipeline)
        finally:
            await pipeline.shutdown()

    return asyncio.run(_main())


async def one_cycle(pipeline):
    return await pipeline.run_cycle()


class TestHelpers:
    def test_default_user_agent(self):
        assert effective_user_agent(SourceConfig()) == DEFAULT_USER_AGENT

    def test_configured_user_agent_trimmed(self):
        assert effective_user_agent(SourceConfig(user_agent=" app/1.0 ")) == "app/1.0"

    def test_fallback_prefers_svg_code(self):
        origins = [origin for _, origin in fallback_candidates(SourceConfig(svg_code=FALLBACK))]
        assert origins == [OutputOrigin.FALLBACK, OutputOrigin.PLACEHOLDER]
        assert fallback_candidates(SourceConfig(svg_code=FALLBACK))[0][0] == FALLBACK

    def test_comment_svg_code_ignored(self):
        candidates = fallback_candidates(SourceConfig(svg_code="<!-- paste SVG here -->"))
        assert [origin for _, origin in candidates] == [OutputOrigin.PLACEHOLDER]

    def test_no_fallback(self):
        assert fallback_candidates(SourceConfig(use_builtin_placeholder=False)) == []


class TestSuccessfulCycle:
    @respx.mock
    def test_structured_forecast_rendered(self, fast_config, oslo_body):
        respx.get(FORECAST_URL).mock(return_value=httpx.Response(200, text=oslo_body))

        status = run(fast_config, one_cycle)

        assert status.state == RenderState.READY
        assert status.origin == OutputOrigin.LIVE
        assert status.fetch_state == FetchState.SUCCESS
        assert status.updated_at is not None
        root = ET.fromstring(status.svg)
        assert root.get("viewBox") == "0 0 900 340"
        assert "59.9139Â°N 10.7522Â°E" in status.svg

    @respx.mock
    def test_raw_vector_sanitized(self, fast_config, portal_svg):
        respx.get(**RAW_ROUTE).mock(return_value=httpx.Response(200, text=portal_svg))

        status = run(with_source(fast_config, source_url=RAW_SOURCE), one_cycle)

        assert status.state == RenderState.READY
        assert status.origin == OutputOrigin.LIVE
        assert "<script" not in status.svg
        assert ET.fromstring(status.svg).get("viewBox") == "0 0 782 391"

    @respx.mock
    def test_default_identification_sent(self, fast_config, oslo_body):
        route = respx.get(FORECAST_URL).mock(return_value=httpx.Response(200, text=oslo_body))
        run(fast_config, one_cycle)
        assert route.calls[0].request.headers["user-agent"] == DEFAULT_USER_AGENT

    def test_status_listener(self, fast_config, oslo_body):
        seen = []
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text=oslo_body))
        client = httpx.AsyncClient(transport=transport)

        async def scenario(pipeline):
            try:
                return await pipeline.run_cycle()
            finally:
                await client.aclose()

        run(
            fast_config,
            scenario,
            client=client,
            on_update=lambda s: seen.append(s.state),
        )
        assert seen == [RenderState.LOADING, RenderState.READY]


class TestDegradation:
    @respx.mock
    def test_failure_uses_svg_code(self, fast_config):
        respx.get(FORECAST_URL).mock(return_value=httpx.Response(503))

        status = run(with_source(fast_config, svg_code=FALLBACK), one_cycle)

        assert status.state == RenderState.READY
        assert status.origin == OutputOrigin.FALLBACK
        assert status.fetch_state == FetchState.FAILED
        assert "fallback" in status.svg
        assert status.message is None

    @respx.mock
    def test_failure_uses_placeholder(self, fast_config):
        respx.get(FORECAST_URL).mock(return_value=httpx.Response(503))

        status = run(fast_config, one_cycle)

        assert status.origin == OutputOrigin.PLACEHOLDER
        assert "Meteogram unavailable" in status.svg

    @respx.mock
    def test_unusable_svg_code_falls_through_to_placeholder(self, fast_config):
        respx.get(FORECAST_URL).mock(return_value=httpx.Response(503))

        status = run(with_source(fast_config, svg_code="<div>not svg</div>"), one_cycle)

        assert status.state == RenderState.READY
        assert status.origin == OutputOrigin.PLACEHOLDER
        assert "Meteogram unavailable" in status.svg
        assert status.fetch_state == FetchState.FAILED

    @respx.mock
    def test_unusable_svg_code_without_placeholder_is_error(self, fast_config):
        respx.get(FORECAST_URL).mock(return_value=httpx.Response(503))

        config = with_source(fast_config, svg_code="<div>not svg</div>", use_builtin_placeholder=False)
        status = run(config, one_cycle)

        assert status.state == RenderState.ERROR
        assert status.message == LOAD_FAILED_MESSAGE

    @respx.mock
    def test_failure_without_fallback_is_error(self, fast_config):
        respx.get(FORECAST_URL).mock(side_effect=httpx.ConnectError("refused"))

        status = run(with_source(fast_config, use_builtin_placeholder=False), one_cycle)

        assert status.state == RenderState.ERROR
        assert status.message == LOAD_FAILED_MESSAGE
        assert status.can_retry
        assert status.svg is None

    @respx.mock
    def test_failure_after_success_keeps_last_chart(self, fast_config, oslo_body):
        respx.get(FORECAST_URL).mock(
            side_effect=[httpx.Response(200, text=oslo_body)] + [httpx.Response(500)] * 3
        )

        async def scenario(pipeline):
            first = await pipeline.run_cycle()
            second = await pipeline.run_cycle()
            return first, second

        first, second = run(fast_config, scenario)

        assert first.origin == OutputOrigin.LIVE
        assert second.state == RenderState.READY
        assert second.origin == OutputOrigin.RETAINED
        assert second.svg == first.svg

    @respx.mock
    def test_unparseable_forecast_degrades(self, fast_config):
        respx.get(FORECAST_URL).mock(return_value=httpx.Response(200, text="{}"))

        status = run(fast_config, one_cycle)

        assert status.state == RenderState.READY
        assert status.origin == OutputOrigin.PLACEHOLDER

    @respx.mock
    def test_raw_payload_without_svg_degrades(self, fast_config):
        respx.get(**RAW_ROUTE).mock(return_value=httpx.Response(200, text="<html>maintenance</html>"))

        config = with_source(fast_config, source_url=RAW_SOURCE, svg_code=FALLBACK)
        status = run(config, one_cycle)

        assert status.origin == OutputOrigin.FALLBACK

    @respx.mock
    def test_not_modified_keeps_output(self, fast_config, portal_svg):
        respx.get(**RAW_ROUTE).mock(
            side_effect=[
                httpx.Response(200, text=portal_svg, headers={"etag": '"v1"'}),
                httpx.Response(304),
            ]
        )

        async def scenario(pipeline):
            first = await pipeline.run_cycle()
            second = await pipeline.run_cycle()
            return first, second

        first, second = run(with_source(fast_config, source_url=RAW_SOURCE), scenario)

        assert second.state == RenderState.READY
        assert second.fetch_state == FetchState.NOT_MODIFIED
        assert second.svg == first.svg


class TestPreconditions:
    @respx.mock
    def test_no_source_without_fallback(self):
        config = MeteogramConfig(source=SourceConfig(use_builtin_placeholder=False))
        status = run(config, one_cycle)
        assert status.state == RenderState.IDLE
        assert status.message == NO_SOURCE_MESSAGE
        assert not respx.calls

    @respx.mock
    def test_no_source_shows_fallback(self):
        config = MeteogramConfig(source=SourceConfig(svg_code=FALLBACK))
        status = run(config, one_cycle)
        assert status.state == RenderState.READY
        assert status.origin == OutputOrigin.FALLBACK
        assert not respx.calls

    @respx.mock
    def test_blank_user_agent(self, fast_config):
        route = respx.get(FORECAST_URL).mock(return_value=httpx.Response(200))
        status = run(with_source(fast_config, user_agent="   "), one_cycle)
        assert status.state == RenderState.ERROR
        assert "User-Agent" in status.message
        assert not route.called

    def test_invalid_source_scheme(self, fast_config):
        status = run(with_source(fast_config, source_url="ftp://example.com/a.svg"), one_cycle)
        assert status.state == RenderState.ERROR
        assert status.message == "Invalid Source URL provided."
        assert status.can_retry


class TestReconfiguration:
    @respx.mock
    def test_style_change_rerenders_without_fetch(self, fast_config, oslo_body):
        route = respx.get(FORECAST_URL).mock(return_value=httpx.Response(200, text=oslo_body))
        restyled = fast_config.model_copy(
            update={"style": StyleConfig(temperature_line_color="#00ff00")}
        )

        async def scenario(pipeline):
            await pipeline.run_cycle()
            return await pipeline.apply_config(restyled)

        status = run(fast_config, scenario)

        assert route.call_count == 1
        assert status.origin == OutputOrigin.LIVE
        assert "#00ff00" in status.svg

    @respx.mock
    def test_sample_window_change_rerenders_without_fetch(self, fast_config, oslo_body):
        route = respx.get(FORECAST_URL).mock(return_value=httpx.Response(200, text=oslo_body))
        narrow = fast_config.model_copy(update={"chart": ChartConfig(max_samples=3)})

        async def scenario(pipeline):
            first = await pipeline.run_cycle()
            second = await pipeline.apply_config(fast_config)
            return first, second

        first, second = run(narrow, scenario)

        assert route.call_count == 1
        assert first.svg.count('class="hour-label"') == 2
        assert second.svg.count('class="hour-label"') == 6
        assert second.origin == OutputOrigin.LIVE

    @respx.mock
    def test_refresh_change_rearms_identification_warning(self, fast_config, oslo_body, caplog):
        respx.get(FORECAST_URL).mock(return_value=httpx.Response(200, text=oslo_body))
        config = with_source(fast_config, user_agent="Mëteo ☂")

        async def scenario(pipeline):
            await pipeline.run_cycle()
            await pipeline.run_cycle()
            await pipeline.apply_config(with_source(config, refresh_interval_minutes=10))

        with caplog.at_level(logging.WARNING, logger="meteogram.ingest.fetch_controller"):
            run(config, scenario)

        warnings = [r for r in caplog.records if "Unable to set User-Agent" in r.getMessage()]
        assert len(warnings) == 2

    @respx.mock
    def test_source_change_refetches_and_resets_validators(self, fast_config, oslo_body, portal_svg):
        forecast = respx.get(FORECAST_URL).mock(
            return_value=httpx.Response(200, text=oslo_body, headers={"etag": '"f1"'})
        )
        raw = respx.get(**RAW_ROUTE).mock(return_value=httpx.Response(200, text=portal_svg))

        async def scenario(pipeline):
            await pipeline.run_cycle()
            assert pipeline.controller.validators.present
            return await pipeline.apply_config(with_source(fast_config, source_url=RAW_SOURCE))

        status = run(fast_config, scenario)

        assert forecast.call_count == 1
        assert raw.call_count == 1
        assert "if-none-match" not in raw.calls[0].request.headers
        assert status.origin == OutputOrigin.LIVE

    @respx.mock
    def test_auto_refresh_schedules_timer(self, fast_config, oslo_body):
        respx.get(FORECAST_URL).mock(return_value=httpx.Response(200, text=oslo_body))
        config = with_source(fast_config, auto_refresh_enabled=True, refresh_interval_minutes=15)

        async def scenario(pipeline):
            await pipeline.start()
            scheduled = (pipeline.refresh_timer.is_active, pipeline.refresh_timer.interval)
            await pipeline.apply_config(with_source(config, auto_refresh_enabled=False))
            return scheduled, pipeline.refresh_timer.is_active

        (active, interval), still_active = run(config, scenario)

        assert active
        assert interval == 900
        assert not still_active

    def test_auto_refresh_needs_source(self):
        config = MeteogramConfig(source=SourceConfig(auto_refresh_enabled=True))

        async def scenario(pipeline):
            await pipeline.start()
            return pipeline.refresh_timer.is_active

        assert run(config, scenario) is False


class TestSupersededCycles:
    def test_new_cycle_cancels_in_flight_one(self, fast_config, oslo_body):
        calls = []

        async def handler(request):
            calls.append(request.url)
            if len(calls) == 1:
                await asyncio.sleep(10)
            return httpx.Response(200, text=oslo_body)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        async def scenario(pipeline):
            try:
                first = await pipeline.start_cycle()
                while not calls:
                    await asyncio.sleep(0)
                status = await pipeline.run_cycle()
                return first, status
            finally:
                await client.aclose()

        first, status = run(fast_config, scenario, client=client)

        assert first.cancelled()
        assert status.state == RenderState.READY
        assert status.origin == OutputOrigin.LIVE

    def test_stale_results_discarded(self, fast_config):
        async def scenario(pipeline):
            pipeline._generation = 2
            pipeline._show_fallback(1, no_source=True)
            return pipeline.status

        status = run(fast_config, scenario)
        assert status.state == RenderState.IDLE
        assert status.svg is None
