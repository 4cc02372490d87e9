"""FastAPI application entry point for the Lattice governance core.

The application wires the event bus, the artifact registry, the PR tracker
and the metrics recorder for the lifetime of the process, and exposes:
- GET /health: liveness and actor status
- GET /metrics: Prometheus metrics
- POST /webhooks/github: GitHub webhook receiver
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry

from lattice import __version__
from lattice.artifacts.registry import ArtifactRegistry
from lattice.config import LatticeSettings, get_settings
from lattice.errors import LatticeError
from lattice.events.bus import EventBus
from lattice.events.metrics import MetricsRecorder, generate_metrics_output, get_metrics
from lattice.logging_config import configure_logging
from lattice.prs.tracker import PRTracker
from lattice.webhook.handler import WebhookHandler
from lattice.webhook.models import WebhookResult

logger = structlog.get_logger()


GITHUB_EVENT_HEADER = "X-GitHub-Event"


def _log_configuration(settings: LatticeSettings) -> None:
    """Log the effective configuration on startup."""
    logger.info(
        "Lattice configuration",
        github_repo=settings.github_repo,
        log_level=settings.log_level,
        log_format=settings.log_format,
        metrics_enabled=settings.metrics_enabled,
        host=settings.host,
        port=settings.port,
    )


def create_app(
    settings: Optional[LatticeSettings] = None,
    registry: Optional[CollectorRegistry] = None,
) -> FastAPI:
    """Create the Lattice FastAPI application.

    Args:
        settings: Settings to use. If None, they are read from the
                  environment at startup.
        registry: Optional Prometheus registry. If None, uses the default
                  REGISTRY. Pass a custom registry for testing.

    Returns:
        FastAPI: The application. Components are available on
        ``app.state`` while it is running.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or get_settings()
        configure_logging(cfg.log_level, cfg.log_format)

        logger.info("Lattice starting up...")
        _log_configuration(cfg)

        event_bus = EventBus()
        artifact_registry = ArtifactRegistry(event_bus)
        pr_tracker = PRTracker(event_bus, default_repo=cfg.github_repo)
        metrics_recorder = (
            MetricsRecorder(event_bus, metrics=get_metrics(registry))
            if cfg.metrics_enabled
            else None
        )

        if metrics_recorder is not None:
            await metrics_recorder.start()
        await artifact_registry.start()
        await pr_tracker.start()

        app.state.settings = cfg
        app.state.event_bus = event_bus
        app.state.artifact_registry = artifact_registry
        app.state.pr_tracker = pr_tracker
        app.state.metrics_recorder = metrics_recorder
        app.state.webhook_handler = WebhookHandler(pr_tracker, event_bus)

        logger.info("Lattice started successfully")

        try:
            yield
        finally:
            logger.info("Lattice shutting down...")

            await artifact_registry.stop()
            await pr_tracker.stop()
            if metrics_recorder is not None:
                await metrics_recorder.stop()

            logger.info("Lattice shutdown complete")

    app = FastAPI(
        title="Lattice",
        description="Governance core for autonomous agent intents",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health(request: Request):
        """Liveness probe endpoint.

        Returns:
            dict: Overall status and whether each actor is running.
        """
        state = request.app.state
        actors = {
            "artifact_registry": state.artifact_registry.running,
            "pr_tracker": state.pr_tracker.running,
        }
        status = "healthy" if all(actors.values()) else "degraded"
        return {"status": status, "version": __version__, "actors": actors}

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(
            content=generate_metrics_output(registry),
            media_type=CONTENT_TYPE_LATEST,
        )

    @app.post("/webhooks/github")
    async def github_webhook(request: Request):
        """GitHub webhook receiver endpoint.

        Signature validation happens upstream, so incoming requests are
        trusted. The event type comes from the X-GitHub-Event header.

        Returns:
            dict: The dispatch result.
        """
        event_name = request.headers.get(GITHUB_EVENT_HEADER, "")

        try:
            payload = await request.json()
        except ValueError:
            logger.warning("Webhook body is not valid JSON", event_name=event_name)
            return WebhookResult.ignored(event_name, "invalid JSON body").model_dump(mode="json")

        handler: WebhookHandler = request.app.state.webhook_handler

        try:
            result = await handler.dispatch(event_name, payload)
        except LatticeError as e:
            logger.warning("Webhook dispatch failed", event_name=event_name, **e.to_dict())
            return JSONResponse(status_code=409, content=e.to_dict())
        except ValueError as e:
            logger.warning("Webhook rejected", event_name=event_name, error=str(e))
            return JSONResponse(
                status_code=422,
                content={"error": "invalid_update", "message": str(e)},
            )

        logger.info(
            "Webhook dispatched",
            event_name=event_name,
            status=result.status.value,
            reason=result.reason,
        )
        return result.model_dump(mode="json")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(app, host=_settings.host, port=_settings.port)
