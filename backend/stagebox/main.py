"""Stagebox primary application.

Serves the browser-facing API: sessions, project media, capability links
and the file gateway. Stored bytes live behind the media service
(``stagebox.media.main:app``), which this app reaches over HTTP.

Modules:
    - auth: login, session cookies and the login rate limiter
    - projects: media records, uploads and the deletion cascade
    - gateway: signed links and streamed file access
    - admin: user provisioning behind the admin API key

Run with:
    uvicorn stagebox.main:app --port 3000
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from stagebox.admin.router import router as admin_router
from stagebox.auth.router import router as auth_router
from stagebox.config import get_config
from stagebox.errors import register_error_handlers
from stagebox.gateway.client import close_media_client
from stagebox.gateway.router import router as gateway_router
from stagebox.metadata.service import MetadataStore
from stagebox.projects.router import router as projects_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# httpx/httpcore log every connection to the media service.
for _noisy in ("httpx", "httpcore", "httpcore.http11", "httpcore.connection"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    config = get_config()

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    MetadataStore.get_instance()
    logger.info(
        "Stagebox ready: environment=%s media_service=%s",
        config.environment,
        config.media_service.base_url,
    )

    yield

    await close_media_client()
    logger.info("Stagebox shutdown complete")


app = FastAPI(
    title="Stagebox",
    description="Project media with signed links and streamed playback",
    version="0.1.0",
    lifespan=lifespan,
)

register_error_handlers(app)

app.include_router(auth_router)
# Gateway routes claim audio/waveform/file before the {media_id} routes.
app.include_router(gateway_router)
app.include_router(projects_router)
app.include_router(admin_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}
