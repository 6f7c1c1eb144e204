"""
FastAPI application for the Tool Intake service.
"""

from __future__ import annotations

import importlib.metadata
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .context import AppContext, build_context
from .db.base import init_database
from .errors import IntakeError
from .routes import admin_router, submissions_router, tools_router

logger = structlog.get_logger()

DISTRIBUTION = "toolbox-intake"


def app_version() -> str:
    try:
        return importlib.metadata.version(DISTRIBUTION)
    except importlib.metadata.PackageNotFoundError:
        return "0.0.0"


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """Build the application; tests pass a context wired to fakes."""
    context = context or build_context()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Starting Tool Intake service", environment=context.settings.environment)
        init_database(context.engine)
        yield
        logger.info("Shutting down Tool Intake service")
        await context.aclose()

    app = FastAPI(
        title=context.settings.app_name,
        description="Validation, review and publishing pipeline for tool submissions",
        version=app_version(),
        lifespan=lifespan,
    )
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(IntakeError)
    async def intake_error_handler(request: Request, exc: IntakeError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "Request failed",
            path=request.url.path,
            status_code=exc.status_code,
            code=exc.code,
            step=exc.step,
            error=exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.get("/healthz", tags=["system"])
    def healthz() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok"}

    @app.get("/version", tags=["system"])
    def version() -> dict[str, str]:
        return {"version": app_version()}

    app.include_router(submissions_router)
    app.include_router(admin_router)
    app.include_router(tools_router)
    return app
