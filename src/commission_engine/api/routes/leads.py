"""Lead assignment routes."""

from fastapi import APIRouter, Depends

from ..auth import verify_secret
from ..dependencies import get_service
from ..schemas.commission import ReassignLeadRequest

router = APIRouter(prefix="/v1/leads", tags=["leads"])


@router.post("/{lead_id}/reassign")
async def reassign(
    lead_id: str,
    payload: ReassignLeadRequest,
    service=Depends(get_service),
    _auth=Depends(verify_secret),
):
    """Hand a lead to another agent."""
    lead = service.reassign_lead(lead_id, payload.agent_id, payload.reason)
    return lead.to_dict()
