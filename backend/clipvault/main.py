"""
ClipVault backend service - media ingestion + catalog.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from . import __version__
from .catalog.store import JsonCatalogStore
from .config import Settings, load_settings
from .execution.transcoder import Transcoder
from .media.errors import IngestionError
from .media.models import BlogPost
from .routes import media, posts
from .services.ingestion import IngestionExecutor, IngestionPipeline

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    pipeline: Optional[IngestionPipeline] = None,
) -> FastAPI:
    """
    Create the ClipVault API application.

    Args:
        settings: Resolved settings. Loaded from the environment if not provided.
        pipeline: Pre-wired pipeline (tests inject fakes). Built from settings otherwise.

    Returns:
        FastAPI application
    """
    settings = settings or load_settings()
    pipeline = pipeline or IngestionPipeline.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings.ensure_directories()
        logger.info(
            f"ClipVault {__version__} ready: media_root={settings.media_root} "
            f"catalog={settings.catalog_path} policy={pipeline.policy.value} "
            f"workers={settings.max_workers}"
        )
        if not Transcoder(settings.ffmpeg_path).available:
            logger.warning(f"[API] ffmpeg not found ({settings.ffmpeg_path}); every transcode will fail")
        yield
        app.state.executor.shutdown(wait=False)

    app = FastAPI(title="ClipVault", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.pipeline = pipeline
    app.state.executor = IngestionExecutor(pipeline, max_workers=settings.max_workers)
    app.state.posts_store = JsonCatalogStore(settings.posts_path, BlogPost)

    @app.exception_handler(IngestionError)
    async def ingestion_error_handler(request: Request, exc: IngestionError) -> JSONResponse:
        if exc.http_status >= 500:
            logger.error(f"[API] {request.method} {request.url.path} → {exc.kind.value}: {exc.details}")
        else:
            logger.info(f"[API] {request.method} {request.url.path} → {exc.kind.value}: {exc.details}")
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    app.include_router(media.router)
    app.include_router(posts.router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/")
    async def root():
        return {"service": "clipvault", "version": __version__, "status": "running"}

    # Plain file server for the media root, mounted last so routes win
    app.mount(
        settings.public_prefix.rstrip("/") or "/files",
        StaticFiles(directory=str(settings.media_root), check_dir=False),
        name="media-files",
    )

    return app
