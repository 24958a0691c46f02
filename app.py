"""Main FastAPI application for the manifest-driven API gateway."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

# Configure logging BEFORE importing any modules that use logger
log_level = os.getenv('LOG_LEVEL', 'INFO')
logging.basicConfig(
    level=getattr(logging, log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Import after logging is configured
from fastapi import FastAPI
from gateway import __version__
from gateway.constants import CONTEXT_ROOT
from gateway.dependencies import get_orchestrator
from gateway.routers import plugins_router


def create_app(plugins_dir: Optional[Path] = None) -> FastAPI:
    """Build the application; plugin routes are synthesized at startup.

    Args:
        plugins_dir: Override the configured plugin directory
    """
    app = FastAPI(
        title="Manifest Gateway",
        description="RESTful gateway serving plugins described by manifest files",
        version=__version__,
    )

    orchestrator = get_orchestrator()
    if plugins_dir is not None:
        orchestrator.plugins_dir = Path(plugins_dir)
    app.state.orchestrator = orchestrator

    app.include_router(plugins_router)  # /gateway/plugins endpoints

    @app.get("/")
    async def root():
        return {
            "message": "Manifest Gateway",
            "contextRoot": CONTEXT_ROOT,
            "ready": orchestrator.ready,
            "docs": "/docs",
        }

    @app.on_event("startup")
    async def startup_event():
        """Application startup event."""
        logger.info("Starting Manifest Gateway")
        logger.info(f"Working directory: {Path.cwd()}")
        orchestrator.startup(app)

    @app.on_event("shutdown")
    async def shutdown_event():
        """Application shutdown event."""
        logger.info("Shutting down Manifest Gateway")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "9090"))
    uvicorn.run("app:app", host="0.0.0.0", port=port, reload=True)
