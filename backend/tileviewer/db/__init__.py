"""Database interface and repository abstractions.

This package holds the layer and basemap data models and the repositories
that store them, in memory for tests and local development or in
PostgreSQL for deployments.

Example:
    Use in a service or FastAPI dependency:
        >>> from tileviewer.db import database
        >>> repo = database.get_layer_repository(settings)
"""
