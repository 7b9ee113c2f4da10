"""
SkyFare - Backend Main Application

Routes:
    /api/v1/flights  - search, pricing + enrichment, booking preparation
    /health          - liveness, degraded during an Amadeus rate-limit cooldown
    /metrics         - Prometheus exposition
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.flight_routes import router as flight_router
from app.core import config
from app.core.metrics import setup_metrics
from app.services.integration.amadeus.reference_data import (
    close_reference_client,
    get_rate_limit_status,
)
from app.services.integration.common.errors import AmadeusAuthError, AppError

# ═══════════════════════════════════════════════════════════════════
# LOGGING
# ═══════════════════════════════════════════════════════════════════

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("SkyFare-Backend")


# ═══════════════════════════════════════════════════════════════════
# LIFESPAN
# ═══════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 SkyFare {config.APP_VERSION} starting against {config.AMADEUS_HOSTNAME}")
    if not config.AMADEUS_API_KEY:
        logger.warning("⚠️ AMADEUS_API_KEY is not set, upstream calls will fail")

    yield

    # the shared reference client owns a pooled httpx connection
    await close_reference_client()
    logger.info("👋 SkyFare stopped")


# ═══════════════════════════════════════════════════════════════════
# APP
# ═══════════════════════════════════════════════════════════════════

app = FastAPI(
    title="SkyFare",
    description="Flight search, pricing and booking preparation over Amadeus",
    version=config.APP_VERSION,
    lifespan=lifespan
)

setup_metrics(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials="*" not in config.CORS_ALLOW_ORIGINS,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(flight_router, prefix="/api/v1")


@app.get("/")
async def root():
    return {
        "name": "SkyFare",
        "version": config.APP_VERSION,
        "flights": "/api/v1/flights",
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    reference = get_rate_limit_status()
    return {
        "status": "healthy" if reference["canMakeRequest"] else "degraded",
        "checks": {
            "amadeus_reference": reference
        }
    }


# ═══════════════════════════════════════════════════════════════════
# ERROR HANDLERS
# ═══════════════════════════════════════════════════════════════════

@app.exception_handler(AmadeusAuthError)
async def amadeus_auth_handler(request: Request, exc: AmadeusAuthError):
    logger.error(f"❌ Amadeus authentication failed on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=502,
        content={"detail": AppError(code="AMADEUS_AUTH_FAILED", message=str(exc)).model_dump()}
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "path": request.url.path}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())
