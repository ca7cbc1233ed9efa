"""Payout batching and leaderboard routes."""

from typing import Optional

from fastapi import APIRouter, Depends

from ..auth import verify_secret
from ..dependencies import get_service
from ..schemas.commission import (
    MarkPaidRequest,
    ProcessPayoutsRequest,
    leaderboards_to_dict,
    payout_run_to_dict,
)

router = APIRouter(prefix="/v1", tags=["payouts"])


@router.post("/payouts/process")
async def process_payouts(
    payload: ProcessPayoutsRequest,
    service=Depends(get_service),
    _auth=Depends(verify_secret),
):
    """Batch due commissions; agents already batched for the period are skipped."""
    run = service.process_commission_payouts(
        payload.period_type, payload.agent_ids, payload.start, payload.end
    )
    return payout_run_to_dict(run)


@router.post("/payouts/{batch_id}/paid")
async def mark_paid(
    batch_id: str,
    payload: MarkPaidRequest,
    service=Depends(get_service),
    _auth=Depends(verify_secret),
):
    return service.mark_batch_paid(batch_id, payload.payment_reference).to_dict()


@router.get("/leaderboards")
async def leaderboards(
    period_type: str = "monthly",
    metric: str = "revenue",
    limit: Optional[int] = None,
    service=Depends(get_service),
):
    boards = service.generate_leaderboards(period_type, metric, limit)
    return leaderboards_to_dict(boards)
