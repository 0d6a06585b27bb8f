"""LifeIndex API — FastAPI application entry point.

Run locally:
    uvicorn src.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.config import get_settings
from src.dependencies import build_service
from src.routers import health, wellness
from src.wellness.base import AuthorizationError, ProviderUnavailableError

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("lifeindex")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks."""
    settings = get_settings()
    logging.getLogger("lifeindex").setLevel(settings.log_level.upper())
    logger.info(
        "Starting LifeIndex API v%s [%s]",
        settings.app_version,
        settings.environment,
    )
    if getattr(app.state, "wellness", None) is None:
        app.state.wellness = build_service(settings)
    yield
    logger.info("LifeIndex API shut down")


# ---------- Error handlers ----------

async def authorization_error_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    logger.warning("Health data access denied: %s", exc)
    return JSONResponse(status_code=403, content={"detail": str(exc)})


async def provider_unavailable_handler(
    request: Request, exc: ProviderUnavailableError
) -> JSONResponse:
    logger.error("Health data provider unavailable: %s", exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


# ---------- App factory ----------

def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="LifeIndex API",
        description=(
            "Daily wellness core — multi-source health data reconciliation, "
            "composite wellness score, recovery score and ranked insights."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_exception_handler(AuthorizationError, authorization_error_handler)
    app.add_exception_handler(ProviderUnavailableError, provider_unavailable_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # ---------- Health check (outside v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    v1_prefix = "/api/v1"

    app.include_router(wellness.router, prefix=v1_prefix)

    return app


app = create_app()
