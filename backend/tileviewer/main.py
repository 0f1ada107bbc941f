"""FastAPI application entrypoint and configuration.

This module provides the main FastAPI application factory that sets up
logging, CORS middleware, the tile pipeline and its change notifications,
includes the API routers, and exposes a health check endpoint for
monitoring.

Example:
    The application can be run with uvicorn:
        $ uvicorn tileviewer.main:app --reload

    Or imported and used programmatically:
        >>> from tileviewer.main import app
        >>> # Use app in ASGI server
"""

import fastapi
from fastapi.middleware import cors

from tileviewer.api import basemaps, ingest, layers, render, tiles, viewport
from tileviewer.core import config
from tileviewer.core import logging as app_logging
from tileviewer.services import notifications
from tileviewer.services import pipeline as pipeline_service


def create_app() -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    Each application owns one TilePipeline and one Notifier on
    ``app.state``. The pipeline subscribes to both registry topics, so a
    layer or basemap mutation immediately resets load statuses and
    schedules auto-zoom for newly visible layers.

    Returns:
        Configured FastAPI application instance ready for ASGI server.
    """
    settings = config.get_settings()
    app_logging.configure_logging(settings.log_level)

    app = fastapi.FastAPI(title="Tile Viewer", version="0.1.0")

    app.state.pipeline = pipeline_service.TilePipeline(settings)
    app.state.notifier = notifications.Notifier()
    for topic in (notifications.LAYERS_CHANGED, notifications.BASEMAPS_CHANGED):
        app.state.notifier.subscribe(topic, app.state.pipeline.sync_registry)

    app.include_router(layers.router)
    app.include_router(basemaps.router)
    app.include_router(ingest.router)
    app.include_router(tiles.router)
    app.include_router(viewport.router)
    app.include_router(render.router)

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:  # type: ignore[misc]
        """Health check endpoint for monitoring and load balancers.

        Returns:
            Dictionary with status "ok" if the service is running.
        """
        return {"status": "ok"}

    return app


app = create_app()
