"""Health check endpoint."""

import platform
import sys

import PIL
from fastapi import APIRouter

from imgcompress.formats import OutputFormat

router = APIRouter()

_encoder = None


def set_encoder(encoder):
    global _encoder
    _encoder = encoder


@router.get("/health")
async def health_check():
    """Service health, Pillow version and which output formats can be written."""
    writable = None
    if _encoder is not None:
        writable = [fmt.value for fmt in OutputFormat if _encoder.supports(fmt.as_image_format())]

    return {
        "status": "healthy",
        "pillow_version": PIL.__version__,
        "output_formats": writable,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
