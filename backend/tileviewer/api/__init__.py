"""API router subpackage for the tile viewer backend.

Each module exposes its own APIRouter for composition in the application's
main FastAPI instance.

Submodules:
    - layers: Registering, listing, toggling and describing layers.
    - basemaps: Listing, adding and activating basemaps.
    - ingest: Analyzing and uploading local tile directories.
    - tiles: Serving tiles of ingested local layers.
    - viewport: Reading and setting the camera.
    - render: Render primitives and client tile callbacks.
    - dependencies: Shared FastAPI dependencies.
"""
