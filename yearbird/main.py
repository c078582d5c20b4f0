"""Yearbird settings service."""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from yearbird.context import build_context
from yearbird.core.config import settings
from yearbird.core.database import create_db_and_tables, engine
from yearbird.core.scheduler import shutdown_scheduler, start_scheduler
from yearbird.routes import auth, settings as settings_routes, sync

# Configure logging
log_dir = Path.home() / ".logs" / "yearbird"
log_dir.mkdir(parents=True, exist_ok=True)
log_file = log_dir / "latest.log"

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    filename=str(log_file),
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    # Startup
    logger.info("Starting Yearbird settings service")
    create_db_and_tables()
    context = build_context(
        settings,
        engine=engine,
        http_client=httpx.AsyncClient(timeout=settings.drive_request_timeout_seconds),
    )
    app.state.context = context
    start_scheduler()
    yield
    # Shutdown
    shutdown_scheduler()
    await context.aclose()
    logger.info("Yearbird settings service shut down")


app = FastAPI(
    title=settings.app_name,
    description="Calendar viewer companion: Google sign-in and Drive-backed settings sync",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS for the viewer front end
origins = (
    ["*"]
    if settings.allowed_origins == "*"
    else [o.strip() for o in settings.allowed_origins.split(",")]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router)
app.include_router(settings_routes.router)
app.include_router(sync.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}
