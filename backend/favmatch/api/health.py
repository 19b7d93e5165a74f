"""Health and system status endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from favmatch.api.deps import get_services
from favmatch.services.container import Services

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Service health check: reports store and catalog status."""
    integrations = getattr(request.app.state, "integrations", {})
    return {
        "status": "ok",
        "version": request.app.version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "integrations": integrations,
    }


@router.post("/admin/index/rebuild")
async def rebuild_index(services: Services = Depends(get_services)):
    """Repair the title index from the users' favorite lists."""
    return await services.index.rebuild()
