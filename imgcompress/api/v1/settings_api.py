"""Read and replace the optimizer settings."""

from fastapi import APIRouter, HTTPException

from imgcompress.jobs.options import OptimizerConfig

router = APIRouter()

_scheduler = None


def set_scheduler(scheduler):
    global _scheduler
    _scheduler = scheduler


@router.get("/settings", response_model=OptimizerConfig)
async def get_settings():
    if _scheduler is None:
        raise HTTPException(status_code=503, detail="Job scheduler not initialized")
    return _scheduler.config


@router.put("/settings", response_model=OptimizerConfig)
async def put_settings(config: OptimizerConfig):
    """Replace every option at once. Applies to jobs dispatched from now on."""
    if _scheduler is None:
        raise HTTPException(status_code=503, detail="Job scheduler not initialized")
    _scheduler.update_config(config)
    return _scheduler.config
