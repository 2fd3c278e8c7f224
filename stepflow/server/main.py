"""
FastAPI main application.

This is the entry point for the stepflow HTTP API.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from stepflow import __version__
from stepflow.config import get_config
from stepflow.exceptions import StepflowError
from stepflow.server.middleware.error_handler import (
    general_exception_handler,
    stepflow_error_handler,
    validation_exception_handler,
)
from stepflow.server.routes import executions, health, workflows

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    from stepflow.server.dependencies import get_engine

    engine = get_engine()
    logger.info(f"stepflow API starting with {len(engine.list_workflows())} registered workflows")

    yield

    logger.info("stepflow API shutting down")


app = FastAPI(
    title="stepflow API",
    description="Load, validate and run declarative workflows",
    version=__version__,
    lifespan=lifespan,
)

# Defaults to localhost-only origins; see STEPFLOW_CORS_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StepflowError, stepflow_error_handler)
app.add_exception_handler(Exception, general_exception_handler)

app.include_router(health.router, prefix="/api/v1", tags=["health"])
app.include_router(workflows.router, prefix="/api/v1", tags=["workflows"])
app.include_router(executions.router, prefix="/api/v1", tags=["executions"])


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "name": "stepflow API",
        "version": __version__,
        "endpoints": {
            "v1": "/api/v1",
            "health": "/api/v1/health",
            "docs": "/docs",
        },
    }


def run_server(host: str = "0.0.0.0", port: int = 8080, log_level: str = "info") -> None:
    """Serve the API with uvicorn (blocking).

    The app object is passed directly so workflows loaded into the
    process-wide engine before startup remain registered.
    """
    import uvicorn

    uvicorn.run(app, host=host, port=port, log_level=log_level)
