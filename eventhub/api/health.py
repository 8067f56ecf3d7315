"""Health check endpoint."""

from fastapi import APIRouter

from eventhub.core.config import get_settings
from eventhub.core.redis import get_redis_client

router = APIRouter(tags=["Health"])
settings = get_settings()


@router.get("/health")
async def health_check():
    """Service health check endpoint."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "cache": "connected" if get_redis_client() is not None else "disabled",
    }
