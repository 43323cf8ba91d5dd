"""Sables Docs - rugby team document management FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sables.api import agent, documents, drive
from sables.config import get_settings
from sables.indexing.search_index import get_search_index
from sables.scheduler.jobs import start_scheduler, stop_scheduler
from sables.services.database import async_session_maker, close_db, init_db

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    await init_db()

    from sables.indexing.service import IndexingService

    async with async_session_maker() as db:
        try:
            await IndexingService(db).initialize()
        except Exception as e:
            logger.error(f"Search index unavailable at startup: {e}")

    await start_scheduler()

    yield

    # Shutdown
    await stop_scheduler()
    await get_search_index().close()
    await close_db()


app = FastAPI(
    title=settings.app_name,
    description="Document management and assistant backend for a rugby team",
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(drive.router, prefix="/api/v1/drive", tags=["Drive Sync"])
app.include_router(documents.router, prefix="/api/v1/documents", tags=["Documents"])
app.include_router(agent.router, prefix="/api/v1/agent", tags=["Agent"])


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
    }


@app.get("/")
async def root() -> dict:
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "docs": "/docs",
        "health": "/health",
    }
