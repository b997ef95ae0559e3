from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.core.config import get_settings
from chatdesk.core.db import get_db_session
from chatdesk.services.telemetry import APP_VERSION

router = APIRouter()


@router.get("/health")
async def health(request: Request) -> dict:
    hub = getattr(request.app.state, "realtime_hub", None)
    return {
        "success": True,
        "data": {
            "status": "ok",
            "environment": get_settings().app_env,
            "version": APP_VERSION,
            "realtime_connections": hub.connection_count() if hub is not None else 0,
            "timestamp": datetime.now(UTC).isoformat(),
        },
    }


@router.get("/health/db")
async def db_health(session: AsyncSession = Depends(get_db_session)) -> dict:
    await session.execute(text("SELECT 1"))
    return {"success": True, "data": {"db": "ok"}}
