"""FastAPI application for the stream reconciliation service."""

import contextlib
import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment variables from .env file
load_dotenv()

from ..infrastructure.dependencies import get_service_container
from .endpoints import health, streams, webhooks

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """Start provider clients and the background sweep; stop them on exit."""
    container = get_service_container()
    await container.startup()
    logger.info("🚀 Stream reconciler started")

    yield  # Application runs here

    await container.shutdown()
    logger.info("👋 Stream reconciler stopped")


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(
        title="Stream Reconciler API",
        description="Lifecycle reconciliation for memorial livestreams",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health.router)
    app.include_router(streams.router)
    app.include_router(streams.memorial_router)
    app.include_router(webhooks.router)
    return app


app = create_app()
