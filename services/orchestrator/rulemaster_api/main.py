from __future__ import annotations

import logging
import os
import sys
from datetime import UTC, datetime
from typing import Annotated

import psutil
from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse

from rulemaster_api import __version__
from rulemaster_api.config import Settings, get_settings
from rulemaster_api.logging import configure_logging
from rulemaster_api.research.errors import ConfigurationError
from rulemaster_api.research.router import games_router, router as research_router
from rulemaster_api.schemas import HealthResponse

# Configure logging based on environment
configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="RuleMaster Research Orchestrator",
    version=__version__,
    description="Board game rules answers with throttled, cached external research",
    docs_url="/docs" if os.getenv("RULEMASTER_ENABLE_DOCS", "true").lower() == "true" else None,
    redoc_url="/redoc" if os.getenv("RULEMASTER_ENABLE_DOCS", "true").lower() == "true" else None,
)

if os.getenv("RULEMASTER_ENABLE_CORS", "false").lower() == "true":
    from fastapi.middleware.cors import CORSMiddleware

    allowed_origins = os.getenv("RULEMASTER_ALLOWED_ORIGINS", "").split(",")
    allowed_origins = [origin.strip() for origin in allowed_origins if origin.strip()]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(research_router)
app.include_router(games_router)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error(f"Service misconfigured: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": str(exc), "kind": exc.kind.value},
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Close the upstream HTTP session if research services were started."""
    services = getattr(app.state, "research_services", None)
    if services is None:
        return
    try:
        await services.close()
        logger.info("Research services shut down")
    except Exception as e:
        logger.error(f"Error shutting down research services: {e}")


SettingsDep = Annotated[Settings, Depends(get_settings)]


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__, timestamp=datetime.now(UTC))


@app.get("/health/detailed")
def detailed_health(settings: SettingsDep) -> dict:
    """Detailed health check for production monitoring."""
    try:
        health_info = {
            "status": "healthy",
            "version": __version__,
            "timestamp": datetime.now(UTC).isoformat(),
            "environment": {
                "python_version": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
                "environment": settings.environment,
                "aws_bedrock_enabled": settings.aws.use_bedrock,
                "answer_model_id": settings.aws.answer_model_id,
            },
            "configuration": {
                "complexity_threshold": settings.research.complexity_threshold,
                "max_research_per_window": settings.research.max_research_per_window,
                "window_seconds": settings.research.window_seconds,
                "daily_research_limit": settings.research.daily_research_limit,
                "cache_ttl_seconds": settings.research.cache_ttl_seconds,
                "bgg_base_url": settings.bgg.base_url,
                "bgg_request_timeout_seconds": settings.bgg.request_timeout_seconds,
            },
        }

        services = getattr(app.state, "research_services", None)
        if services is not None:
            usage = services.limiter.get_usage_status()
            cache_stats = services.cache.get_stats()
            health_info["research"] = {
                "window_count": usage.window_count,
                "daily_research_usage": usage.daily_research_usage,
                "can_perform_research": usage.can_perform_research,
                "cache_size": cache_stats.size,
                "cache_hit_rate": cache_stats.hit_rate,
            }
        else:
            health_info["research"] = {"status": "not started"}

        process = psutil.Process()
        health_info["system"] = {
            "cpu_percent": psutil.cpu_percent(interval=0.1),
            "memory_percent": psutil.virtual_memory().percent,
            "process_memory_mb": round(process.memory_info().rss / 1024 / 1024, 2),
            "num_threads": process.num_threads(),
        }

        return health_info

    except Exception as e:
        logger.error(f"Detailed health check failed: {e}")
        return {
            "status": "error",
            "error": str(e),
            "timestamp": datetime.now(UTC).isoformat(),
        }
