"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

from fastapi import Depends, Request

from src.config import Settings, get_settings
from src.wellness.base import HealthDataProvider
from src.wellness.config_loader import ScoringConfig, get_scoring_config, reload_scoring_config
from src.wellness.cycle import WellnessService
from src.wellness.providers import get_provider

logger = logging.getLogger("lifeindex.dependencies")


def build_provider(settings: Settings) -> HealthDataProvider:
    """Instantiate the provider named in settings."""
    kwargs = {}
    if settings.provider == "apple_health" and settings.apple_health_export_path:
        kwargs["export_path"] = settings.apple_health_export_path
    provider = get_provider(settings.provider, **kwargs)
    logger.info("Using health data provider: %s", provider.DISPLAY_NAME)
    return provider


def load_scoring(settings: Settings) -> ScoringConfig:
    if settings.scoring_config_path:
        return reload_scoring_config(Path(settings.scoring_config_path))
    return get_scoring_config()


def build_service(settings: Settings) -> WellnessService:
    return WellnessService(build_provider(settings), config=load_scoring(settings))


async def get_wellness_service(request: Request) -> WellnessService:
    """Return the app-wide WellnessService, creating it on first use.

    The lifespan hook normally sets ``app.state.wellness``; the lazy path
    covers apps built without running the lifespan.
    """
    service: WellnessService | None = getattr(request.app.state, "wellness", None)
    if service is None:
        service = build_service(get_settings())
        request.app.state.wellness = service
    return service


# Annotated shortcuts for route signatures
Wellness = Annotated[WellnessService, Depends(get_wellness_service)]
AppSettings = Annotated[Settings, Depends(get_settings)]
