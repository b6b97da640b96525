#!/usr/bin/env python3
"""
Background worker entrypoint.
Runs the bridge orchestrator: deposit detection and settlement reconciliation
for every non-terminal ledger row, resuming in-flight bridges on start.
"""

import asyncio
import logging
import signal
from contextlib import suppress
from typing import Optional

from infrastructure.config.settings import settings
from infrastructure.logging.logger import setup_logging


async def _start_orchestrator() -> Optional[object]:
    """Start the bridge orchestrator if enabled."""
    if not settings.orchestrator.enabled:
        logging.getLogger(__name__).warning("⚠️ Bridge orchestrator disabled (ORCHESTRATOR_ENABLED=false)")
        return None

    from core.services.bridge.orchestrator import get_bridge_orchestrator

    orchestrator = get_bridge_orchestrator()
    await orchestrator.start()
    logging.getLogger(__name__).info("✅ Bridge orchestrator launched")
    return orchestrator


async def _run_workers() -> None:
    """Bootstraps the worker services and keeps them alive."""
    setup_logging(__name__)
    logger = logging.getLogger(__name__)

    logger.info("🚀 Starting Shieldbridge worker service")

    from core.database.connection import close_db, init_db
    from core.services.bridge import close_clients

    await init_db()
    logger.info("✅ Database initialized")

    orchestrator = await _start_orchestrator()

    stop_event = asyncio.Event()

    def _request_shutdown() -> None:
        logger.info("⚠️ Shutdown signal received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, _request_shutdown)

    try:
        logger.info("✅ Worker services running")
        await stop_event.wait()
    finally:
        logger.info("🛑 Stopping worker services")

        if orchestrator:
            await orchestrator.stop()

        await close_clients()
        await close_db()


def main() -> None:
    """Launch the async worker runner."""
    asyncio.run(_run_workers())


if __name__ == "__main__":
    main()
