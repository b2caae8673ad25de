"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from imgcompress.api.v1.health import router as health_router
from imgcompress.api.v1.jobs import router as jobs_router
from imgcompress.api.v1.upload import router as upload_router
from imgcompress.api.v1.settings_api import router as settings_router
from imgcompress.api.v1.views import router as views_router
from imgcompress.api.v1.auto_download import router as auto_download_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(jobs_router, tags=["jobs"])
v1_router.include_router(upload_router, tags=["upload"])
v1_router.include_router(settings_router, tags=["settings"])
v1_router.include_router(views_router, tags=["views"])
v1_router.include_router(auto_download_router, tags=["auto-download"])
