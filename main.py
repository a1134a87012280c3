"""Main entry point for running the Health Tracker Gateway."""

import asyncio
import sys

import uvicorn
from loguru import logger

from health_gateway.api.main import create_app
from health_gateway.core.config import get_settings
from health_gateway.core.logging import UVICORN_LOG_CONFIG, setup_logging
from health_gateway.infrastructure.database import StoreHandle
from health_gateway.lifecycle import LifecycleManager


def main() -> None:
    """Main entry point for the gateway process."""
    settings = get_settings()

    # Setup logging first
    setup_logging(settings)

    # When reload is enabled, uvicorn owns the process and the app its store
    if settings.debug:
        logger.info(
            "Starting Uvicorn on http://{}:{} (development mode with auto-reload)",
            settings.api_host,
            settings.api_port,
        )
        uvicorn.run(
            "health_gateway.api.main:create_app",
            factory=True,
            host=settings.api_host,
            port=settings.api_port,
            reload=True,
            log_config=UVICORN_LOG_CONFIG,
        )
        return

    store = StoreHandle.from_config(settings.database_config)
    app = create_app(settings, store=store)
    manager = LifecycleManager(app, store, settings)

    exit_code = asyncio.run(manager.run())
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
