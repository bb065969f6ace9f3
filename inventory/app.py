"""
Main Application - Inventory Reporting API

FastAPI application serving the IT asset and license inventory: host,
database, cluster and alert reports plus cloud cost recommendations.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

# ============================================================================
# IMPORTS
# ============================================================================
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .cloud.router import router as cloud_router
from .cloud.service import CloudService
from .config import Configuration, Environment, LoggingConfig, load_config
from .database import MongoDatabase, connect
from .errors import InventoryError
from .reports.router import router as reports_router
from .reports.service import ReportService

logger = logging.getLogger(__name__)


def configure_logging(log_config: LoggingConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, log_config.level.value),
        format=log_config.format,
        datefmt=log_config.date_format,
        force=True,
    )


def create_app(config: Optional[Configuration] = None, database: Optional[MongoDatabase] = None) -> FastAPI:
    """
    Build the API application

    Args:
        config: Configuration; loaded from file and environment when omitted
        database: Data access object; a MongoDB connection is opened at
            startup when omitted

    Returns:
        The FastAPI application
    """
    config = config or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = None
        db = database
        if db is None:
            client, mongo_db = connect(config.database)
            db = MongoDatabase(mongo_db)
        app.state.report_service = ReportService(db, config.api_service)
        app.state.cloud_service = CloudService(db)
        logger.info(f"Inventory API starting in {config.environment.value} mode")
        if config.api_service.read_only:
            logger.warning("Service started in read-only mode")
        yield
        if client is not None:
            client.close()
            logger.info("MongoDB connection closed")

    # Interactive API docs are not published in production
    public_docs = config.environment is not Environment.PRODUCTION
    app = FastAPI(
        title="Inventory API",
        description="IT asset and license inventory reports",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if public_docs else None,
        redoc_url="/redoc" if public_docs else None,
        openapi_url="/openapi.json" if public_docs else None,
    )
    app.state.config = config

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"{request.method} {request.url.path} - {response.status_code} ({elapsed_ms:.1f} ms)")
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.web.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ========================================================================
    # ERROR HANDLERS
    # ========================================================================

    @app.exception_handler(InventoryError)
    async def inventory_error_handler(request: Request, exc: InventoryError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} - {exc.detail}", exc_info=exc)
        else:
            logger.warning(f"{request.method} {request.url.path} - {exc.status_code} {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail, "message": exc.reason},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler for unhandled errors"""
        logger.error(
            f"Unhandled Exception: {request.method} {request.url.path}\n"
            f"  Exception Type: {type(exc).__name__}\n"
            f"  Message: {str(exc)}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"error": str(exc), "message": "Internal Server Error"},
        )

    app.include_router(reports_router)
    app.include_router(cloud_router)
    return app


# ============================================================================
# MAIN APPLICATION ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    settings = load_config()
    configure_logging(settings.logging)
    uvicorn.run(
        create_app(settings),
        host=settings.web.host,
        port=settings.web.port,
        log_level=settings.web.log_level,
    )
