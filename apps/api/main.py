"""
Social Importer - FastAPI Backend
Imports posts from connected Facebook accounts and pushes them to subscriber websites.
"""

import asyncio
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from config import require_platform_credentials, settings, validate_security_settings
from database import engine, Base
import models  # noqa: F401
from routers import (
    health,
    auth,
    scheduler,
    posts,
    websites,
    webhook_deliveries,
)
from routers.errors import http_error
from services.errors import SyncError
from services.scheduler import sync_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting Social Importer API...")
    validate_security_settings()
    if settings.SYNC_ENABLED:
        require_platform_credentials()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    sync_task = None
    if settings.SYNC_ENABLED and sync_scheduler.interval_minutes > 0:
        sync_task = asyncio.create_task(sync_scheduler.run_forever())
        print(f"📅 Post sync loop enabled (every {sync_scheduler.interval_minutes} min).")
    yield
    # Shutdown
    if sync_task is not None:
        sync_task.cancel()
        try:
            await sync_task
        except asyncio.CancelledError:
            pass
    print("👋 Shutting down API...")


app = FastAPI(
    title="Social Importer API",
    description="Sync social media posts and deliver them to websites via signed webhooks",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SyncError)
async def sync_error_handler(request: Request, exc: SyncError):
    """Pipeline errors that escape a route still get their mapped status."""
    error = http_error(exc)
    return JSONResponse(status_code=error.status_code, content={"detail": error.detail})


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(scheduler.router, prefix="/scheduler", tags=["Scheduler"])
app.include_router(posts.router, prefix="/posts", tags=["Posts"])
app.include_router(websites.router, prefix="/websites", tags=["Websites"])
app.include_router(webhook_deliveries.router, prefix="/webhook-deliveries", tags=["Webhook Deliveries"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Social Importer API",
        "version": "0.1.0",
        "status": "running"
    }
