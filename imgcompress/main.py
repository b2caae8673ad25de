"""imgcompress - local image compression service (FastAPI application)."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from imgcompress.config import settings
from imgcompress.api.v1.router import v1_router
from imgcompress.api.v1.health import router as health_root_router
from imgcompress.api.v1 import auto_download as auto_download_api
from imgcompress.api.v1 import health as health_api
from imgcompress.api.v1 import jobs as jobs_api
from imgcompress.api.v1 import settings_api
from imgcompress.api.v1 import upload as upload_api
from imgcompress.api.v1 import views as views_api
from imgcompress.encoders.pillow_encoder import PillowEncoder
from imgcompress.jobs.scheduler import JobScheduler
from imgcompress.storage.job_store import JobStore
from imgcompress.storage.resources import ResourceManager

logger = logging.getLogger(__name__)

# Global scheduler reference
_scheduler = None


def build_scheduler() -> JobScheduler:
    """Assemble the pipeline from ``settings``."""
    resources = ResourceManager(settings.views_dir)
    resources.cleanup_stale()
    store = JobStore(settings.resolved_database_path())
    return JobScheduler(
        encoder=PillowEncoder(),
        resources=resources,
        store=store,
        encoder_threads=settings.encoder_threads,
        max_upload_bytes=settings.max_upload_bytes,
    )


def wire(scheduler: JobScheduler) -> None:
    """Hand the scheduler to every router module."""
    jobs_api.set_scheduler(scheduler)
    upload_api.set_scheduler(scheduler)
    settings_api.set_scheduler(scheduler)
    auto_download_api.set_scheduler(scheduler)
    views_api.set_resources(scheduler.resources)
    health_api.set_encoder(scheduler.encoder)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    global _scheduler

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting imgcompress on port %d", settings.compute_port)
    logger.info("Job store: %s", settings.resolved_database_path())
    logger.info("Views dir: %s", settings.views_dir)

    _scheduler = build_scheduler()
    wire(_scheduler)
    await _scheduler.restore()
    logger.info("Job scheduler ready")

    yield

    logger.info("Shutting down imgcompress")
    await _scheduler.shutdown()


app = FastAPI(
    title="imgcompress",
    description="Local batch image compression with a persistent job queue",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: allow the local frontend dev servers
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("imgcompress.main:app", host="127.0.0.1", port=settings.compute_port)
