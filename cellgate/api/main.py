"""FastAPI application factory and lifespan.

The lifespan owns the process resources: unless a ``CellContext`` is passed
to ``create_app``, it builds one (engine, session factory, cache, router),
registers every cell, and disposes of the engine on shutdown. A supplied
context is installed as-is and left for its owner to close.

Middleware execute in reverse order of registration, so request context is
registered last to run first.
"""

from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

from fastapi import FastAPI
from loguru import logger

from cellgate.api.dependencies import CellContextDep
from cellgate.api.middleware.error_handler import register_exception_handlers
from cellgate.api.middleware.request_context import RequestContextMiddleware
from cellgate.api.middleware.request_logging import RequestLoggingMiddleware
from cellgate.api.routes.cells import router as cells_router
from cellgate.api.utils.responses import ORJSONResponse
from cellgate.cells.registry import register_cells
from cellgate.core.config import Settings, get_settings
from cellgate.core.logging import setup_logging
from cellgate.core.observability import instrument_app, instrument_engine, setup_tracing
from cellgate.gateway.context import CellContext, build_cell_context
from cellgate.infrastructure.database.session import check_database_connection


def _lifespan(
    settings: Settings, supplied: CellContext | None
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:
        if supplied is not None:
            logger.info("Application startup complete with supplied cell context")
            yield
            return

        context = build_cell_context(settings)
        register_cells(context)
        app_instance.state.cell_context = context

        if context.engine is not None:
            instrument_engine(context.engine, settings)
            is_healthy, error_msg = await check_database_connection(context.engine)
            if is_healthy:
                logger.info("Database connection successful")
            else:
                # Cells degrade to fallback configuration without the database
                logger.error("Database connection failed during startup: {}", error_msg)

        logger.info(
            "Application startup complete - {} v{}",
            app_instance.title,
            app_instance.version,
        )

        try:
            yield
        finally:
            logger.info("Application shutdown initiated")
            await context.close()
            logger.info("Application shutdown complete")

    return lifespan


def create_app(
    settings: Settings | None = None, context: CellContext | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use; defaults to ``get_settings()``.
        context: A ready ``CellContext`` with cells registered. When given,
            the lifespan neither builds nor closes one.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        settings = context.settings if context is not None else get_settings()

    setup_logging(settings)
    setup_tracing(settings)

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        default_response_class=ORJSONResponse,
        lifespan=_lifespan(settings, context),
    )
    if context is not None:
        application.state.cell_context = context

    # Register exception handlers BEFORE middleware
    register_exception_handlers(application)

    application.add_middleware(
        RequestLoggingMiddleware,
        log_config=settings.log_config,
        trust_proxy_headers=settings.environment == "production",
    )
    application.add_middleware(
        RequestContextMiddleware,
        default_channel=settings.gateway_config.default_channel,
    )

    application.include_router(cells_router)

    @application.get("/health")
    async def health(cell_context: CellContextDep) -> dict[str, Any]:
        """Process health with database reachability and per-cell status.

        A failing database or cell makes the process ``degraded``, not down.
        """
        health_status: dict[str, Any] = {"status": "healthy", "database": None}

        if cell_context.engine is not None:
            is_healthy, error_msg = await check_database_connection(cell_context.engine)
            health_status["database"] = is_healthy
            if not is_healthy:
                logger.warning("Database health check failed: {}", error_msg)
                health_status["status"] = "degraded"

        cells: dict[str, str] = {}
        for destination in cell_context.router.destinations():
            report = await cell_context.router.health(destination)
            cells[destination.value] = report.get("status", "unknown")
        health_status["cells"] = cells

        if any(status != "healthy" for status in cells.values()):
            health_status["status"] = "degraded"

        return health_status

    @application.get("/info")
    async def info(cell_context: CellContextDep) -> dict[str, Any]:
        """Application name, version, environment and registered cells."""
        app_settings = cell_context.settings
        return {
            "app_name": app_settings.app_name,
            "version": app_settings.app_version,
            "environment": app_settings.environment,
            "debug": app_settings.debug,
            "cells": [d.value for d in cell_context.router.destinations()],
        }

    instrument_app(application, settings)

    return application
