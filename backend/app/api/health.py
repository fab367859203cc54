"""Health and system status endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from app.config import settings

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Service health check — reports integration status."""
    integrations = getattr(request.app.state, "integrations", {})
    return {
        "success": True,
        "status": "ok",
        "service": settings.app_name,
        "version": settings.app_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "integrations": integrations,
    }
