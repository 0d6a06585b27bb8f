"""Wellness endpoints: today's score and insights, and the trailing week."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Query

from src.dependencies import Wellness
from src.models.base import ErrorDetail
from src.models.wellness import TodayResponse, WeekResponse

router = APIRouter(prefix="/wellness", tags=["wellness"])
logger = logging.getLogger("lifeindex.routers.wellness")

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    403: {"model": ErrorDetail, "description": "Health data access not granted"},
    503: {"model": ErrorDetail, "description": "Health data provider unavailable"},
}


@router.get("/today", response_model=TodayResponse, responses=_ERROR_RESPONSES)
async def get_today(
    service: Wellness,
    force_refresh: bool = Query(default=False, description="Bypass the 5-minute cache"),
) -> Any:
    """Current summary, composite score, recovery/sleep scores and insights."""
    result = await service.fetch(force_refresh=force_refresh)
    return TodayResponse.from_cycle(result)


@router.get("/week", response_model=WeekResponse, responses=_ERROR_RESPONSES)
async def get_week(service: Wellness) -> Any:
    """Trailing seven days, oldest first, with absolute scores for days with data."""
    result = await service.fetch()
    return WeekResponse.from_cycle(result)
