"""
FastAPI Application
===================

Main FastAPI application for the query verification service.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from api.middleware.telemetry import TelemetryMiddleware
from api.routes.health import router as health_router
from api.routes.verify import router as verify_router
from api.schemas import ErrorResponse
from observability.logging_config import setup_logging
from observability.metrics import metrics_endpoint, setup_metrics
from observability.tracing import setup_tracing
from query_verifier.clients.base import ExecutionClient
from query_verifier.clients.rewriter import TableMaterializingRewriter
from query_verifier.clients.sqlite import SQLiteExecutionClient
from query_verifier.config import VerifierConfig
from query_verifier.manager import VerificationManager
from query_verifier.models import ClusterRole

logger = structlog.get_logger(__name__)


def create_client(config: VerifierConfig) -> Optional[ExecutionClient]:
    """
    Create the execution client from configuration.

    Returns None when either cluster database is missing; the service
    then starts degraded and rejects verification requests.
    """
    if not config.control_database or not config.test_database:
        return None
    return SQLiteExecutionClient(
        {
            ClusterRole.CONTROL: config.control_database,
            ClusterRole.TEST: config.test_database,
        }
    )


def create_manager(config: VerifierConfig, client: Optional[ExecutionClient]) -> Optional[VerificationManager]:
    """Create the verification manager, or None if no client is available."""
    if client is None:
        return None
    return VerificationManager.create(config, TableMaterializingRewriter(config), client)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan handler."""
    config: VerifierConfig = app.state.config
    client = app.state.client or create_client(config)
    app.state.manager = create_manager(config, client)

    logger.info(
        "Starting query verifier API",
        version=__version__,
        clusters_configured=app.state.manager is not None,
        max_concurrency=config.max_concurrency,
    )

    yield

    logger.info("Shutting down query verifier API")


def create_app(
    config: Optional[VerifierConfig] = None,
    client: Optional[ExecutionClient] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Verifier settings (default: loaded from the environment)
        client: Execution client override (default: SQLite from config)
    """
    config = config or VerifierConfig()
    setup_logging(config.log_level, config.log_format)

    app = FastAPI(
        title="Query Verifier API",
        description=(
            "Runs SQL queries on a control and a test cluster and classifies "
            "each as a match, regression, known issue or inconclusive."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.client = client
    app.state.manager = None

    # Add middleware
    app.add_middleware(TelemetryMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add routes
    app.include_router(health_router)
    app.include_router(verify_router)

    setup_metrics(app, __version__)
    app.add_route("/metrics", metrics_endpoint)
    setup_tracing(app, __version__)

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        request_id = getattr(request.state, "request_id", None)
        logger.exception("Unhandled error", request_id=request_id)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="InternalServerError",
                message="An unexpected error occurred",
                request_id=request_id,
            ).model_dump(),
        )

    return app


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
