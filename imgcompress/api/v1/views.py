"""Serve view handles (previews and inspection images) by token."""

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

router = APIRouter()

_resources = None


def set_resources(resources):
    global _resources
    _resources = resources


@router.get("/views/{token}")
async def get_view(token: str):
    if _resources is None:
        raise HTTPException(status_code=503, detail="Resource manager not initialized")
    view = _resources.resolve(token)
    if view is None:
        raise HTTPException(status_code=404, detail="View not found or already released")
    return FileResponse(view.path, media_type=view.media_type)
