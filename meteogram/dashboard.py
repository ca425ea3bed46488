"""Meteogram dashboard: FastAPI app serving the live chart, status and controls."""

import html
import logging
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, Response
from pydantic import BaseModel

from meteogram.config.loader import load_config, save_config
from meteogram.config.schema import MeteogramConfig
from meteogram.models.status import RenderState, WidgetStatus
from meteogram.pipeline.meteogram_pipeline import MeteogramPipeline

logger = logging.getLogger(__name__)

CONFIG_PATH = Path("meteogram.yaml")


class ConfigUpdate(BaseModel):
    """Partial config update; only provided fields are changed."""
    source: dict | None = None
    fetch: dict | None = None
    chart: dict | None = None
    style: dict | None = None


def _status_payload(pipeline: MeteogramPipeline) -> dict:
    status = pipeline.status
    return {
        "state": status.state.value,
        "origin": status.origin.value if status.origin else None,
        "fetch_state": status.fetch_state.value,
        "message": status.message,
        "can_retry": status.can_retry,
        "has_chart": status.svg is not None,
        "source_url": pipeline.effective_source_url,
        "auto_refresh": pipeline.refresh_timer.is_active,
        "updated_at": status.updated_at,
    }


def _page(status: WidgetStatus, background: str) -> str:
    if status.state == RenderState.LOADING and status.svg is None:
        body = '<p class="loading">Loading meteogram...</p>'
    elif status.svg is not None:
        body = f'<div class="chart">{status.svg}</div>'
    else:
        body = f'<p class="message">{html.escape(status.message or "No chart available.")}</p>'
    if status.can_retry:
        body += (
            '<form method="post" action="/api/refresh">'
            '<button type="submit">Retry</button></form>'
        )
    return (
        "<!doctype html><html><head><meta charset=\"utf-8\"><title>Meteogram</title>"
        f"<style>body{{margin:0;background:{html.escape(background)};font-family:sans-serif}}"
        ".chart svg{width:100%;height:auto}</style></head>"
        f"<body>{body}</body></html>"
    )


def create_app(
    config: MeteogramConfig | None = None,
    config_path: str | Path | None = None,
    client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build the dashboard around one pipeline instance.

    The pipeline starts (first cycle and refresh timer) with the app and is
    shut down with it. ``config_path`` is where config updates are saved.
    """
    path = Path(config_path) if config_path is not None else None
    if config is None:
        config = load_config(path or CONFIG_PATH)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        pipeline = MeteogramPipeline(config, client=client)
        app.state.pipeline = pipeline
        await pipeline.start()
        try:
            yield
        finally:
            await pipeline.shutdown()

    app = FastAPI(title="Meteogram Dashboard", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _pipeline(request: Request) -> MeteogramPipeline:
        return request.app.state.pipeline

    # ── Data endpoints ──────────────────────────────────────────────

    @app.get("/api/status")
    def get_status(request: Request):
        """Render state, output origin and the last message."""
        return _status_payload(_pipeline(request))

    @app.get("/chart.svg")
    def get_chart(request: Request):
        svg = _pipeline(request).status.svg
        if svg is None:
            raise HTTPException(404, "No chart available")
        return Response(svg, media_type="image/svg+xml")

    # ── Config endpoints ───────────────────────────────────────────

    @app.get("/api/config")
    def get_config(request: Request):
        return _pipeline(request).config.model_dump()

    @app.post("/api/config")
    async def update_config(update: ConfigUpdate, request: Request):
        """Merge-update config sections and apply them to the running pipeline."""
        pipeline = _pipeline(request)
        data = pipeline.config.model_dump()

        changed = []
        for section_name in ("source", "fetch", "chart", "style"):
            patch = getattr(update, section_name)
            if not patch:
                continue
            for k, v in patch.items():
                old = data[section_name].get(k)
                if old != v:
                    changed.append(f"{section_name}.{k}: {old} → {v}")
                    data[section_name][k] = v

        if not changed:
            return {"status": "no_change", "changed": []}

        try:
            new_config = MeteogramConfig(**data)
        except ValueError as e:
            raise HTTPException(422, str(e)) from e

        await pipeline.apply_config(new_config)
        if path is not None:
            save_config(new_config, path)
        logger.info("Config updated: %s", ", ".join(changed))
        return {"status": "updated", "changed": changed}

    # ── Control endpoints ───────────────────────────────────────────

    @app.post("/api/refresh")
    async def refresh(request: Request):
        """Manual retry."""
        pipeline = _pipeline(request)
        await pipeline.refresh()
        return _status_payload(pipeline)

    # ── Serve dashboard ─────────────────────────────────────────────

    @app.get("/", response_class=HTMLResponse)
    def serve_dashboard(request: Request):
        pipeline = _pipeline(request)
        return HTMLResponse(_page(pipeline.status, pipeline.config.style.overall_background))

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(config_path=CONFIG_PATH), host="0.0.0.0", port=8777)
