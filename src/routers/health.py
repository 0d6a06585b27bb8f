"""Health check endpoint — public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from src.config import get_settings
from src.dependencies import Wellness

router = APIRouter(tags=["system"])
logger = logging.getLogger("lifeindex.health")


@router.get("/health")
async def health_check(service: Wellness) -> dict:
    """Liveness probe. Returns 200 if the API process is up.

    Also reports whether the configured health data provider is reachable.
    """
    settings = get_settings()
    provider_ok = False
    try:
        provider_ok = service.provider.is_available()
    except Exception as exc:
        logger.warning("Health check provider probe failed: %s", exc)

    latest = service.latest
    return {
        "status": "healthy" if provider_ok else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "provider": "available" if provider_ok else "unavailable",
        "last_cycle_at": latest.completed_at.isoformat() if latest else None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
