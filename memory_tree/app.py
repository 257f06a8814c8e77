# FILE: memory_tree/app.py
"""
FastAPI application entry point for Memory Tree
Photo memories API backed by an object store
"""
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from memory_tree import __version__
from memory_tree.config import Settings, get_settings
from memory_tree.middleware.body_limit import BodySizeLimitMiddleware
from memory_tree.routes import health, memories
from memory_tree.services.blob_store import LOCAL_MOUNT_PATH

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown"""
    settings = get_settings()
    logger.info(f"Starting Memory Tree backend v{__version__} (blob backend: {settings.blob_backend})")

    yield

    logger.info("Shutting down Memory Tree backend")
    await memories.close_memory_store()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application for the given settings"""
    settings = settings or get_settings()

    app = FastAPI(
        title="Memory Tree API",
        description="Dated photo memories shown as ornaments on a Christmas tree",
        version=__version__,
        lifespan=lifespan
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Body size limit
    app.add_middleware(BodySizeLimitMiddleware, max_size=settings.body_size_limit_mb * 1024 * 1024)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Invalid request on {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=400, content={"error": "Invalid request"})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(memories.router, prefix="/api/memories", tags=["memories"])

    # Local objects must resolve at their imageUrl
    if settings.blob_backend == "local":
        os.makedirs(settings.local_blob_dir, exist_ok=True)
        app.mount(LOCAL_MOUNT_PATH, StaticFiles(directory=settings.local_blob_dir), name="blobs")

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "service": "Memory Tree",
            "version": __version__,
            "status": "active"
        }

    return app


app = create_app()


def main():
    """Run the API server with uvicorn"""
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    uvicorn.run(
        "memory_tree.app:app",
        host=settings.backend_host,
        port=settings.backend_port,
        reload=settings.environment == "development"
    )


if __name__ == "__main__":
    main()
