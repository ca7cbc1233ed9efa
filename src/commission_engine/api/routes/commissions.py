"""Commission calculation and lifecycle routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import verify_secret
from ..dependencies import get_service
from ..schemas.commission import (
    AutoApproveRequest,
    CalculateCommissionRequest,
    CommissionResponse,
    DisputeRequest,
    ErrorResponse,
    ResolveDisputeRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/commissions", tags=["commissions"])


@router.post(
    "",
    response_model=CommissionResponse,
    status_code=201,
    responses={
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def calculate(
    payload: CalculateCommissionRequest,
    service=Depends(get_service),
    _auth=Depends(verify_secret),
):
    """Calculate and record the commission for a converted lead."""
    award = service.calculate_commission(
        payload.lead_id,
        payload.final_amount,
        payload.conversion_context(),
    )
    return award.to_dict()


@router.get("")
async def list_commissions(
    agent_id: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = Query(default=100, le=1000),
    service=Depends(get_service),
):
    awards = service.list_commissions(agent_id=agent_id, status=status)
    return {"total": len(awards), "commissions": [a.to_dict() for a in awards[:limit]]}


@router.get("/report")
async def report(
    period_type: str = "monthly",
    detailed: bool = False,
    service=Depends(get_service),
):
    """Commission totals by tier, region and status for a period."""
    return service.generate_commission_report(period_type, detailed=detailed)


@router.post("/auto-approve")
async def auto_approve(
    payload: AutoApproveRequest,
    service=Depends(get_service),
    _auth=Depends(verify_secret),
):
    """Approve every pending commission at or under the limit."""
    approved = service.approve_pending_commissions(payload.limit)
    return {"approved": len(approved), "commissions": [a.to_dict() for a in approved]}


@router.get("/overdue")
async def overdue(agent_id: Optional[str] = None, service=Depends(get_service)):
    """Approved commissions still unpaid after the overdue window."""
    awards = service.overdue_commissions(agent_id)
    return {"total": len(awards), "commissions": [a.to_dict() for a in awards]}


@router.get("/{commission_id}", response_model=CommissionResponse)
async def get_commission(commission_id: str, service=Depends(get_service)):
    return service.get_commission(commission_id).to_dict()


@router.post("/{commission_id}/approve", response_model=CommissionResponse)
async def approve(commission_id: str, service=Depends(get_service), _auth=Depends(verify_secret)):
    return service.approve_commission(commission_id).to_dict()


@router.post("/{commission_id}/dispute", response_model=CommissionResponse)
async def dispute(
    commission_id: str,
    payload: DisputeRequest,
    service=Depends(get_service),
    _auth=Depends(verify_secret),
):
    return service.dispute_commission(commission_id, payload.reason).to_dict()


@router.post("/{commission_id}/resolve", response_model=CommissionResponse)
async def resolve(
    commission_id: str,
    payload: ResolveDisputeRequest,
    service=Depends(get_service),
    _auth=Depends(verify_secret),
):
    return service.resolve_dispute(commission_id, payload.approve, payload.resolution).to_dict()
