import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from feedmirror.api.feed import router as feed_router
from feedmirror.core.dependencies import (
    get_metadata_store,
    get_settings,
    get_store_root,
    reset_dependencies,
)
from feedmirror.domain.errors import PathTraversalError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="feedmirror",
    version="0.1.0",
    description="Write-through mirror cache in front of an upstream NuGet v3 feed.",
)


@app.on_event("startup")
async def startup_event() -> None:
    """
    Validate configuration, resolve the storage root and load the local catalog.
    A bad storage root fails startup with ConfigurationError.
    """
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level)

    store_root = get_store_root()
    get_metadata_store()
    logger.info(f"Serving packages from {store_root} (mirroring {'enabled' if settings.mirror_enabled else 'disabled'})")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await reset_dependencies()


@app.exception_handler(PathTraversalError)
async def path_traversal_handler(request: Request, exc: PathTraversalError) -> JSONResponse:
    logger.error(f"Rejected request {request.url.path}: {exc}")
    return JSONResponse(status_code=400, content={"detail": "Invalid package id or version"})


@app.get("/health")
async def health() -> dict:
    """
    Lightweight health check endpoint.
    """
    return {"status": "ok"}


app.include_router(feed_router, tags=["feed"])


if __name__ == "__main__":
    """
    Allow running `python -m feedmirror.main` to start the Uvicorn development server.
    """
    import uvicorn

    uvicorn.run(
        "feedmirror.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
