"""Main application entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI

from .api.router import router
from .config import AppConfig, get_config_path, load_config
from .services import ParkingServices

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def load_app_config(path: Optional[Path] = None) -> AppConfig:
    """Load configuration, falling back to defaults when no file exists."""
    config_path = path or get_config_path()
    if not config_path.exists():
        logger.warning(f"Configuration file not found: {config_path}, using defaults")
        return AppConfig()

    config = load_config(config_path)
    logger.info(f"Loaded configuration from {config_path}")
    return config


def create_app(
    config: Optional[AppConfig] = None,
    services: Optional[ParkingServices] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Application configuration (loaded from disk when omitted)
        services: Prebuilt services; built from config when omitted

    Returns:
        Configured FastAPI app whose lifespan starts and disposes the services
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info("Starting Parking Sync...")

        app_config = config or load_app_config()
        app_services = services or ParkingServices.from_config(app_config)

        try:
            await app_services.start()
        except Exception as e:
            logger.error(f"Failed to start parking services: {e}")

        app.state.services = app_services
        app.state.started_at = datetime.now()
        logger.info(
            f"Parking Sync ready on http://{app_config.api.host}:{app_config.api.port}"
        )

        yield  # Application runs here

        # Shutdown
        logger.info("Shutting down...")
        await app_services.aclose()
        app.state.services = None
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Parking Sync",
        description="Parking layout configuration and real-time occupancy API",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.include_router(router, prefix="/api/v1")
    return app


def main():
    """Run the application."""
    config = load_app_config()

    uvicorn.run(
        create_app(config),
        host=config.api.host,
        port=config.api.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
