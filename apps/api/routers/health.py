"""
Health check endpoints.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import engine, get_db
from models.connection import Connection
from models.post import Post
from services.scheduler import sync_scheduler

router = APIRouter()


@router.get("/health")
async def health_check():
    """
    Health check endpoint.
    Returns overall system health status.
    """
    health_status = {
        "status": "healthy",
        "api": "up",
        "database": "unknown",
        "facebook_app": "configured" if settings.FACEBOOK_APP_ID and settings.FACEBOOK_APP_SECRET else "missing",
        "scheduler": {
            "enabled": settings.SYNC_ENABLED,
            "interval_minutes": sync_scheduler.interval_minutes,
            "running": sync_scheduler.is_running,
        },
    }

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        health_status["database"] = "up"
    except Exception as e:
        health_status["database"] = f"down: {str(e)}"
        health_status["status"] = "degraded"

    return health_status


@router.get("/health/ready")
async def readiness_check():
    """Kubernetes-style readiness probe."""
    missing = [
        name
        for name in ("FACEBOOK_APP_ID", "FACEBOOK_APP_SECRET", "IDENTITY_ENDPOINT")
        if not getattr(settings, name)
    ]

    if missing:
        return JSONResponse(
            status_code=503,
            content={"ready": False, "missing": missing},
        )
    return {"ready": True}


@router.get("/health/sync")
async def sync_status(db: AsyncSession = Depends(get_db)):
    """Connection and delivery backlog counters for dashboards."""
    connection_rows = await db.execute(
        select(Connection.is_active, func.count(Connection.id)).group_by(Connection.is_active)
    )
    connection_counts = {bool(is_active): count for is_active, count in connection_rows.all()}
    last_sync_at = (await db.execute(select(func.max(Connection.last_sync_at)))).scalar()
    unsent = (
        await db.execute(select(func.count(Post.id)).where(Post.webhook_sent.is_(False)))
    ).scalar_one()
    return {
        "connections": {
            "active": connection_counts.get(True, 0),
            "inactive": connection_counts.get(False, 0),
        },
        "last_sync_at": last_sync_at.isoformat() if last_sync_at else None,
        "posts_pending_delivery": unsent,
        "batch_running": sync_scheduler.is_running,
    }


@router.get("/health/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"alive": True}
