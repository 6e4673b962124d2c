#!/usr/bin/env python3
"""
Match Scoring API - FastAPI Application

Scores government contracting opportunities against company profiles,
with a fingerprint-keyed Redis cache and optional background scoring.

Usage:
    python -m web.backend.app

Then open:
    - http://localhost:8080/docs - API Documentation (Swagger UI)
    - http://localhost:8080/redoc - Alternative API Documentation
"""

import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

from fastapi import FastAPI, HTTPException

from core.app_context import AppContext
from core.exceptions import ScoringInputError
from .config import get_config
from .exceptions import (
    ServiceException,
    service_exception_handler,
    scoring_input_exception_handler,
    http_exception_handler,
    general_exception_handler
)
from .routers import match_scores_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Load configuration
config = get_config()

ContextFactory = Callable[[], Awaitable[AppContext]]


async def _default_context() -> AppContext:
    return await AppContext.create(config, with_dispatcher=True)


def create_app(context_factory: Optional[ContextFactory] = None) -> FastAPI:
    """
    Create the FastAPI app.

    Args:
        context_factory: Coroutine building the AppContext at startup.
            Defaults to wiring everything from config.yaml.
    """
    factory = context_factory or _default_context

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.ctx = await factory()
        logger.info(f"Score cache available: {app.state.ctx.cache.is_available}")
        try:
            yield
        finally:
            await app.state.ctx.close()
            app.state.ctx = None

    app = FastAPI(
        title="Match Scoring API",
        description="API for scoring contracting opportunities against company profiles",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # Register exception handlers
    app.add_exception_handler(ScoringInputError, scoring_input_exception_handler)
    app.add_exception_handler(ServiceException, service_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers
    app.include_router(match_scores_router)

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "match-scoring-api"}

    return app


app = create_app()


def main():
    """Run the web server."""
    import uvicorn

    logger.info(f"Starting Match Scoring API on {config.web.host}:{config.web.port}")
    logger.info(f"API Docs: http://{config.web.host}:{config.web.port}/docs")

    uvicorn.run(
        "web.backend.app:app",
        host=config.web.host,
        port=config.web.port,
        reload=False,
        log_level="info"
    )


if __name__ == "__main__":
    main()
