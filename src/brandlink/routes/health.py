from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from brandlink.database import db_manager
from brandlink.managers.redis_manager import redis_manager

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check():
    """
    Liveness and dependency status.

    Returns 200 when MongoDB answers a ping and 503 otherwise. Redis is
    reported but does not fail the check, since caching and rate limiting
    degrade gracefully without it.
    """
    database_ok = await db_manager.health_check()
    redis_ok = await redis_manager.ping()
    body = {
        "status": "healthy" if database_ok else "unhealthy",
        "database": "connected" if database_ok else "disconnected",
        "redis": "connected" if redis_ok else "disconnected",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return JSONResponse(status_code=200 if database_ok else 503, content=body)
