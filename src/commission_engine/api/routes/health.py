"""Health check routes."""

from fastapi import APIRouter, Depends

from ... import __version__
from ..dependencies import get_service

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    return {"status": "healthy", "service": "commission-engine-api", "version": __version__}


@router.get("/ready")
async def ready(service=Depends(get_service)):
    """Readiness check - verifies the tier catalog and stores are wired."""
    return {
        "status": "ready",
        "tiers": service.catalog.names,
        "active_agents": len(service.agents.find_active()),
    }
