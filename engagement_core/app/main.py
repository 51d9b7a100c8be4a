"""
FastAPI Main Application
Engagement Core HTTP surface: callable operations and event ingestion
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from engagement_core import __version__
from engagement_core.app.config import get_config, setup_logging, validate_config
from engagement_core.app.database import db_manager
from engagement_core.services import ServiceError

logger = logging.getLogger(__name__)


# ============================================================================
# Application Lifecycle Management
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager
    Handles startup and shutdown events
    """
    # ========== STARTUP ==========
    logger.info("🚀 Starting Engagement Core...")

    config = get_config()
    setup_logging(config)

    validation_result = validate_config(config)
    if not validation_result["valid"]:
        logger.error("❌ Configuration validation failed!")
        for error in validation_result["errors"]:
            logger.error(f"  - {error}")
        raise RuntimeError("Invalid configuration")

    for warning in validation_result["warnings"]:
        logger.warning(f"  ⚠️  {warning}")

    logger.info("🗄️  Initializing database...")
    await db_manager.create_tables()

    logger.info(
        f"✅ Application startup complete "
        f"(db={config.database.url.split('/')[-1]}, inline_dispatch={config.events.inline_dispatch})"
    )

    yield

    # ========== SHUTDOWN ==========
    logger.info("🛑 Shutting down application...")
    await db_manager.close()
    logger.info("✅ Application shutdown complete")


# ============================================================================
# FastAPI Application Instance
# ============================================================================


def create_app() -> FastAPI:
    """
    FastAPI application factory
    Creates and configures the FastAPI application
    """
    config = get_config()

    app = FastAPI(
        title="Engagement Core",
        description="Derived counters, notification fan-out and reconciliation",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
        debug=config.api.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)
    _register_routers(app, config)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    """Translate errors into {"error": {"status", "message", "details"}}"""

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        log = logger.error if exc.http_status >= 500 else logger.info
        log(f"{exc.error_code}: {exc.message} ({request.url.path})")
        return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.info(f"Validation error: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content={
                "error": {
                    "status": "invalid-argument",
                    "message": "Request body is malformed",
                    "details": {"errors": jsonable_errors(exc)},
                }
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "status": "internal",
                    "message": "An internal error occurred",
                    "details": {},
                }
            },
        )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


def _register_routers(app: FastAPI, config) -> None:
    """Register API routers"""
    from engagement_core.api.routers import callable_router, event_router

    @app.get("/health", tags=["System"])
    async def health_check():
        return {"status": "healthy", "version": __version__}

    @app.get("/system/info", tags=["System"])
    async def system_info():
        return {"config": config.get_summary()}

    app.include_router(callable_router)
    app.include_router(event_router)

    logger.info("✅ API routers registered")


app = create_app()


if __name__ == "__main__":
    import uvicorn

    config = get_config()

    uvicorn.run(
        "engagement_core.app.main:app",
        host=config.api.host,
        port=config.api.port,
        reload=config.api.debug,
        log_level=config.logging.level.lower(),
    )
