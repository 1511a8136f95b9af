"""Stagebox media service application.

Holds the storage root and runs waveform derivation. Only the primary
Stagebox app should be able to reach it; bind it to a private interface:

    uvicorn stagebox.media.main:app --host 127.0.0.1 --port 4001
"""
import logging
import shutil
from contextlib import asynccontextmanager

from fastapi import FastAPI

from stagebox.config import get_config
from stagebox.errors import register_error_handlers

from .router import router as media_router
from .service import MediaStorageService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup checks for the media service."""
    config = get_config()

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)

    service = MediaStorageService.get_instance()
    service.root.mkdir(parents=True, exist_ok=True)
    logger.info(
        "Media service ready: root=%s max_upload=%s",
        service.root,
        config.media.max_upload_size,
    )
    if shutil.which(config.media.waveform_tool) is None:
        logger.warning(
            "Waveform tool '%s' not found on PATH; audio uploads will fail.",
            config.media.waveform_tool,
        )

    yield

    logger.info("Media service shutdown complete")


app = FastAPI(
    title="Stagebox Media Service",
    description="Storage peer for Stagebox: uploads, waveform data and raw file access",
    version="0.1.0",
    lifespan=lifespan,
)

register_error_handlers(app)
app.include_router(media_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}
