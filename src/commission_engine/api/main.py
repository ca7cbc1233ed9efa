"""FastAPI application factory for the commission engine API."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..core.config import EngineConfigManager
from ..errors import (
    CommissionEngineError,
    ConcurrencyConflict,
    ConfigurationError,
    NotFound,
    ValidationError,
)
from ..notifications import create_notifier
from ..services import CommissionService
from .config import settings
from .routes.agents import router as agents_router
from .routes.commissions import router as commissions_router
from .routes.health import router as health_router
from .routes.leads import router as leads_router
from .routes.payouts import router as payouts_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ERROR_STATUS = (
    (NotFound, 404, "not_found"),
    (ValidationError, 422, "validation_error"),
    (ConcurrencyConflict, 409, "conflict"),
    (ConfigurationError, 500, "configuration_error"),
)


def build_service() -> CommissionService:
    """Service over the JSON stores and config file named by the environment."""
    config = EngineConfigManager(Path(settings.config_path)).config
    return CommissionService.from_storage_path(
        settings.data_path,
        config=config,
        notifier=create_notifier(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Commission Engine API")

    runner = None
    if settings.scheduler_enabled:
        try:
            from ..tasks.scheduler import CommissionTaskRunner
            service = app.state.service
            runner = CommissionTaskRunner(service, service.config.job_interval_seconds)
            runner.start()
        except Exception as e:
            logger.warning(f"Task runner failed to start: {e}")

    yield

    if runner:
        runner.stop()
    logger.info("Commission Engine API shutting down")


async def engine_error_handler(request: Request, exc: CommissionEngineError):
    for error_type, status_code, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            break
    else:
        status_code, code = 500, "server_error"

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": code, "detail": str(exc)},
    )


def create_app(service: Optional[CommissionService] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Commission Engine API",
        description="Commission tiers, payouts, leaderboards and lead scoring for referral agents",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service or build_service()

    app.add_exception_handler(CommissionEngineError, engine_error_handler)

    # Routes
    app.include_router(health_router)
    app.include_router(commissions_router)
    app.include_router(agents_router)
    app.include_router(leads_router)
    app.include_router(payouts_router)

    return app
