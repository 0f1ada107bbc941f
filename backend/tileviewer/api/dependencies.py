"""FastAPI dependencies shared by the API routers.

Repositories are resolved from settings; the pipeline and the notifier live
on ``app.state`` so each application instance created by
tileviewer.main.create_app() owns its own render state.
"""

from __future__ import annotations

import fastapi

from tileviewer.core import config
from tileviewer.db import database
from tileviewer.services import notifications
from tileviewer.services import pipeline as pipeline_service


def get_layer_repo(
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> database.LayerRepositoryProtocol:
    """Resolve the layer repository dependency.

    Args:
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        LayerRepositoryProtocol implementation
            (PostgresLayerRepository when the postgres backend is selected).
    """
    return database.get_layer_repository(settings)


def get_basemap_repo(
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> database.BasemapRepositoryProtocol:
    """Resolve the basemap repository dependency."""
    return database.get_basemap_repository(settings)


def get_pipeline(request: fastapi.Request) -> pipeline_service.TilePipeline:
    return request.app.state.pipeline


def get_notifier(request: fastapi.Request) -> notifications.Notifier:
    return request.app.state.notifier


def publish_change(
    notifier: notifications.Notifier,
    topic: str,
    layer_repo: database.LayerRepositoryProtocol,
    basemap_repo: database.BasemapRepositoryProtocol,
) -> int:
    """Publish the registry contents after a mutation under ``topic``."""
    return notifier.publish(
        topic,
        notifications.RegistryChange(
            layers=layer_repo.load(),
            basemaps=basemap_repo.load(),
        ),
    )
