"""
FastAPI application factory for the OINSTEC forms backend.

Creates and configures the FastAPI app, seeds the template repository,
sets up the session store, and mounts the routes.

Run with:
    uvicorn oinstec.api.app:app --reload
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from oinstec.api.routes import configure_routes, router
from oinstec.core.session import SessionStore
from oinstec.core.templates import TemplateRepository

# Load environment variables from .env
load_dotenv()

# Logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_TEMPLATES_DIR = Path(__file__).parent.parent / "schemas"


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    application = FastAPI(
        title="OINSTEC Forms",
        description="Dynamic cylinder inspection forms",
        version="0.1.0",
    )

    # CORS: allow all origins in development
    allowed_origins = os.getenv("CORS_ALLOWED_ORIGINS", "*").split(",")
    application.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Seed templates
    templates_dir = Path(os.getenv("TEMPLATES_DIR", str(DEFAULT_TEMPLATES_DIR)))
    template_repo = TemplateRepository()
    template_repo.load_directory(templates_dir)

    # Initialize session store
    session_timeout = int(os.getenv("SESSION_TIMEOUT_SECONDS", "1800"))
    session_store = SessionStore(timeout_seconds=session_timeout)

    # Configure routes with dependencies
    configure_routes(template_repo, session_store)
    application.include_router(router, prefix="/api")

    @application.on_event("startup")
    async def on_startup():
        logger.info("OINSTEC forms backend starting up")
        logger.info("Templates directory: %s", templates_dir)
        logger.info("Session timeout: %d seconds", session_timeout)

    return application


# Create the app instance (used by uvicorn)
app = create_app()
