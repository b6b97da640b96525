#!/usr/bin/env python3
"""
API entrypoint.
Starts FastAPI; the bridge orchestrator runs in workers.py unless
ORCHESTRATOR_RUN_IN_API is set.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import api_router
from core.database.connection import close_db, init_db
from core.services.bridge import close_clients
from infrastructure.config.settings import settings
from infrastructure.logging.logger import setup_logging
from infrastructure.monitoring.health_checks import router as health_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize the ledger database and, optionally, the orchestrator."""
    setup_logging(__name__)
    logger = logging.getLogger(__name__)

    logger.info("🚀 Starting Shieldbridge API service")
    logger.info(f"🔍 Database backend: {settings.database.effective_url.split(':', 1)[0]}")

    await init_db()
    logger.info("✅ Database initialized")

    if not settings.settlement.default_refund_address:
        logger.warning("⚠️ SETTLEMENT_DEFAULT_REFUND_ADDRESS not set; quotes require an explicit refund address")

    orchestrator = None
    if settings.orchestrator.enabled and settings.orchestrator.run_in_api:
        from core.services.bridge.orchestrator import get_bridge_orchestrator

        orchestrator = get_bridge_orchestrator()
        await orchestrator.start()
        logger.info("✅ Bridge orchestrator running in API process")

    logger.info("✅ API service startup complete")

    try:
        yield
    finally:
        logger.info("🛑 Shutting down Shieldbridge API service")
        if orchestrator:
            await orchestrator.stop()

        await close_clients()
        await close_db()


app = FastAPI(
    title="Shieldbridge API",
    version=settings.version,
    description="SOL -> shielded ZEC bridge orchestrator",
    lifespan=lifespan,
    debug=settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(
    health_router,
    prefix="/health",
    tags=["health"],
)

app.include_router(
    api_router,
    prefix=settings.api_prefix,
)


@app.get("/")
async def root() -> dict:
    """Root endpoint for quick diagnostics."""
    return {
        "name": settings.name,
        "version": settings.version,
        "environment": settings.environment,
        "status": "running",
    }


def main() -> None:
    import uvicorn

    uvicorn.run(
        "api_only:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        log_level=settings.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
