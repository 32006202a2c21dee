"""Application entrypoint for the driftgate service."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from driftgate import __version__
from driftgate.core.config import settings
from driftgate.dependencies import get_event_sink
from driftgate.routers import evaluations, impact, receipts
from driftgate.telemetry import collect_prometheus_metrics, configure_metrics, shutdown_metrics


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_metrics()
    yield
    get_event_sink().close()
    shutdown_metrics()


def create_app() -> FastAPI:
    app = FastAPI(
        title="driftgate",
        description="Schema drift governance: precedent-aware decisions and signed deployment receipts.",
        version=__version__,
        lifespan=lifespan,
    )

    app.include_router(evaluations.router)
    app.include_router(receipts.router)
    app.include_router(impact.router)

    @app.get("/healthz", tags=["health"])
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    if settings.otel_exporter.lower().strip() == "prometheus":

        @app.get("/metrics", tags=["metrics"])
        def metrics_endpoint() -> PlainTextResponse:
            payload, content_type = collect_prometheus_metrics()
            return PlainTextResponse(payload, media_type=content_type)

    return app


app = create_app()
