"""Pydantic models for commission, payout and leaderboard requests/responses."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ...storage.models import PerformanceMetrics


class CalculateCommissionRequest(BaseModel):
    lead_id: str
    final_amount: float = Field(..., description="Final transaction value of the converted lead")
    converted_at: Optional[datetime] = None
    follow_up_delay_hours: float = 0
    days_to_convert: Optional[float] = Field(
        None,
        description="Overrides the days between lead assignment and conversion",
    )

    def conversion_context(self) -> Dict[str, Any]:
        return {
            'converted_at': self.converted_at,
            'follow_up_delay_hours': self.follow_up_delay_hours,
            'days_to_convert': self.days_to_convert,
        }


class AdjustmentSchema(BaseModel):
    kind: str
    amount: float
    reason: str = ""


class CommissionResponse(BaseModel):
    id: str
    agent_id: str
    lead_id: str
    transaction_value: float
    base_amount: float
    rate: float
    tier: str
    tier_multiplier: float
    bonuses: List[AdjustmentSchema] = []
    penalties: List[AdjustmentSchema] = []
    total_amount: float
    status: str
    calculated_at: Optional[datetime] = None
    payout_date: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    dispute_reason: str = ""
    dispute_resolution: str = ""
    batch_id: Optional[str] = None
    breakdown: str = ""


class DisputeRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class ResolveDisputeRequest(BaseModel):
    approve: bool
    resolution: str = ""


class ProcessPayoutsRequest(BaseModel):
    period_type: str = "monthly"
    agent_ids: Optional[List[str]] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class MarkPaidRequest(BaseModel):
    payment_reference: str = ""


class AutoApproveRequest(BaseModel):
    limit: Optional[float] = Field(None, ge=0, description="Largest total to approve; defaults to config")


class ReassignLeadRequest(BaseModel):
    agent_id: str
    reason: str = Field(..., min_length=1)


class TierPointsRequest(BaseModel):
    points: int
    reason: str = Field(..., min_length=1)


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    detail: str


def metrics_to_dict(metrics: PerformanceMetrics) -> Dict[str, Any]:
    return {
        'agent_id': metrics.agent_id,
        'period': {
            'type': metrics.period.period_type.value,
            'start': metrics.period.start.isoformat(),
            'end': metrics.period.end.isoformat(),
        },
        'revenue': {
            'total_revenue': metrics.total_revenue,
            'commission_earned': metrics.commission_earned,
            'average_commission_per_lead': metrics.average_commission_per_lead,
            'revenue_growth': metrics.revenue_growth,
        },
        'conversion': {
            'leads_generated': metrics.leads_generated,
            'leads_converted': metrics.leads_converted,
            'conversion_rate': metrics.conversion_rate,
            'average_lead_value': metrics.average_lead_value,
        },
        'quality': {
            'customer_satisfaction': metrics.customer_satisfaction,
            'retention_rate': metrics.retention_rate,
            'refund_rate': metrics.refund_rate,
            'complaint_rate': metrics.complaint_rate,
        },
        'activity': {
            'active_days': metrics.active_days,
            'average_response_time_hours': metrics.average_response_time_hours,
            'follow_up_rate': metrics.follow_up_rate,
        },
    }


def _entries(entries) -> List[Dict[str, Any]]:
    return [
        {
            'rank': e.rank,
            'agent_id': e.agent_id,
            'agent_name': e.agent_name,
            'tier': e.tier,
            'region': e.region,
            'score': e.score,
        }
        for e in entries
    ]


def leaderboards_to_dict(boards) -> Dict[str, Any]:
    return {
        'metric': boards.metric.value,
        'overall': _entries(boards.overall),
        'by_tier': {name: _entries(group) for name, group in boards.by_tier.items()},
        'by_region': {name: _entries(group) for name, group in boards.by_region.items()},
        'failures': [{'agent_id': f.agent_id, 'reason': f.reason} for f in boards.failures],
    }


def payout_run_to_dict(run) -> Dict[str, Any]:
    return {
        'batches': [b.to_dict() for b in run.batches],
        'skipped': [{'agent_id': f.agent_id, 'reason': f.reason} for f in run.skipped],
        'failures': [{'agent_id': f.agent_id, 'reason': f.reason} for f in run.failures],
        'total_net': run.total_net,
    }
