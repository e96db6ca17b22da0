from fastapi import APIRouter, Depends

from ..core.config import Settings
from ..schemas import ClientConfigOut
from .deps import get_app_settings

router = APIRouter(tags=["health"])

@router.get("/health")
async def health():
    return {"ok": True}

@router.get("/client-config", response_model=ClientConfigOut)
async def client_config(settings: Settings = Depends(get_app_settings)):
    """Intervals the board client uses for its poll loop and live clock."""
    return ClientConfigOut(
        poll_interval_seconds=settings.poll_interval_seconds,
        tick_interval_seconds=settings.tick_interval_seconds,
        grace_period_seconds=settings.grace_period_seconds,
        timezone=settings.timezone,
    )
