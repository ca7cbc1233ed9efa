"""Agent performance, tier and lead prioritization routes."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import verify_secret
from ..dependencies import get_service
from ..schemas.commission import TierPointsRequest, metrics_to_dict

router = APIRouter(prefix="/v1/agents", tags=["agents"])


@router.get("/{agent_id}/metrics")
async def agent_metrics(
    agent_id: str,
    period_type: str = "monthly",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    service=Depends(get_service),
):
    """Revenue, conversion, quality and activity metrics for one period."""
    metrics = service.get_agent_performance_metrics(agent_id, period_type, start, end)
    return metrics_to_dict(metrics)


@router.post("/{agent_id}/tier/evaluate")
async def evaluate_tier(agent_id: str, service=Depends(get_service), _auth=Depends(verify_secret)):
    change = service.evaluate_agent_tier(agent_id)
    return {
        "agent_id": change.agent_id,
        "old_tier": change.old_tier,
        "new_tier": change.new_tier,
        "changed": change.changed,
    }


@router.get("/{agent_id}/tier/progress")
async def tier_progress(agent_id: str, service=Depends(get_service)):
    return service.tier_progress(agent_id)


@router.post("/{agent_id}/tier/points")
async def add_tier_points(
    agent_id: str,
    payload: TierPointsRequest,
    service=Depends(get_service),
    _auth=Depends(verify_secret),
):
    agent = service.add_tier_points(agent_id, payload.points, payload.reason)
    return {"agent_id": agent.id, "tier_points": agent.tier_points}


@router.get("/{agent_id}/commissions/summary")
async def commission_summary(
    agent_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    service=Depends(get_service),
):
    """Pending, approved and paid totals with a per-status breakdown."""
    return service.agent_commission_summary(agent_id, start, end)


@router.get("/{agent_id}/leads/prioritized")
async def prioritized_leads(
    agent_id: str,
    limit: int = Query(default=20, le=200),
    service=Depends(get_service),
):
    """Open leads ordered by score, then conversion probability."""
    results = service.prioritize_leads(agent_id)[:limit]
    return [
        {
            "lead_id": r.lead_id,
            "score": r.score,
            "conversion_probability": r.conversion_probability,
            "priority": r.priority,
            "components": r.components,
        }
        for r in results
    ]
