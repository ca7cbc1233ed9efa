"""Data models for agents, leads, commissions and payouts."""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import ValidationError


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return as_utc(datetime.fromisoformat(value)) if value else None


class AgentStatus(Enum):
    """Agent account status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class LeadStatus(Enum):
    """Status of a lead in the sales pipeline."""

    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    NEGOTIATING = "negotiating"
    PROPOSAL_SENT = "proposal_sent"
    WON = "won"
    LOST = "lost"
    DORMANT = "dormant"


TERMINAL_LEAD_STATUSES = (LeadStatus.WON, LeadStatus.LOST, LeadStatus.DORMANT)


class LeadTemperature(Enum):
    HOT = "hot"
    WARM = "warm"
    COLD = "cold"


class LeadUrgency(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class InteractionType(Enum):
    """Types of interactions with a lead."""

    CALL = "call"
    WHATSAPP = "whatsapp"
    EMAIL = "email"
    MEETING = "meeting"
    NOTE = "note"


class CommissionStatus(Enum):
    """Lifecycle of a commission award."""

    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS = {
    CommissionStatus.PENDING: {CommissionStatus.APPROVED, CommissionStatus.DISPUTED},
    CommissionStatus.APPROVED: {CommissionStatus.PAID, CommissionStatus.DISPUTED},
    CommissionStatus.DISPUTED: {CommissionStatus.APPROVED, CommissionStatus.CANCELLED},
    CommissionStatus.PAID: set(),
    CommissionStatus.CANCELLED: set(),
}

PAYABLE_STATUSES = (CommissionStatus.PENDING, CommissionStatus.APPROVED)


class PayoutStatus(Enum):
    """Payout batch status."""

    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PeriodType(Enum):
    """Aggregation period granularity."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class LeaderboardMetric(Enum):
    """Metrics agents can be ranked by."""

    REVENUE = "revenue"
    CONVERSIONS = "conversions"
    SATISFACTION = "satisfaction"
    GROWTH = "growth"


@dataclass
class Interaction:
    """A logged touchpoint with a lead."""

    type: InteractionType
    description: str
    outcome: str = ""
    date: datetime = field(default_factory=utcnow)


@dataclass
class ReassignmentRecord:
    """A move of a lead from one agent to another."""

    from_agent: str
    to_agent: str
    reason: str
    date: datetime = field(default_factory=utcnow)


@dataclass
class Lead:
    """A prospective buyer or supplier tracked through the pipeline."""

    id: str
    agent_id: str
    company_name: str = ""
    status: LeadStatus = LeadStatus.NEW
    temperature: LeadTemperature = LeadTemperature.COLD
    urgency: LeadUrgency = LeadUrgency.MEDIUM
    estimated_value: Optional[float] = None
    final_value: Optional[float] = None
    interaction_count: int = 0
    last_contact_date: Optional[datetime] = None
    assigned_at: datetime = field(default_factory=utcnow)
    close_date: Optional[datetime] = None
    interactions: List[Interaction] = field(default_factory=list)
    reassignment_history: List[ReassignmentRecord] = field(default_factory=list)

    @property
    def is_closed(self) -> bool:
        return self.status in TERMINAL_LEAD_STATUSES

    def days_in_pipeline(self, now: datetime) -> int:
        """Whole days between assignment and close (or now), rounded up."""
        start = as_utc(self.assigned_at)
        if start is None:
            return 0
        end = as_utc(self.close_date) or as_utc(now)
        seconds = abs((end - start).total_seconds())
        return math.ceil(seconds / 86400)

    def days_since_contact(self, now: datetime) -> Optional[int]:
        if self.last_contact_date is None:
            return None
        delta = as_utc(now) - as_utc(self.last_contact_date)
        return math.floor(delta.total_seconds() / 86400)

    def apply_value_temperature(self):
        """Raise temperature from the estimated deal value."""
        if not self.estimated_value:
            return
        if self.estimated_value > 100000:
            self.temperature = LeadTemperature.HOT
        elif self.estimated_value > 50000 and self.temperature == LeadTemperature.COLD:
            self.temperature = LeadTemperature.WARM

    def add_interaction(
        self,
        interaction_type: InteractionType,
        description: str,
        outcome: str = "",
        when: Optional[datetime] = None
    ) -> Interaction:
        """Record an interaction and warm the lead accordingly."""
        when = as_utc(when) or utcnow()
        interaction = Interaction(interaction_type, description, outcome, when)
        self.interactions.append(interaction)
        self.interaction_count += 1
        self.last_contact_date = when

        if interaction_type == InteractionType.MEETING or "interested" in outcome.lower():
            self.temperature = LeadTemperature.HOT
        elif self.interaction_count > 3 and self.temperature == LeadTemperature.COLD:
            self.temperature = LeadTemperature.WARM

        return interaction

    def update_status(self, new_status: LeadStatus, reason: str = "", when: Optional[datetime] = None):
        """Move the lead to a new pipeline status."""
        when = as_utc(when) or utcnow()
        old_status = self.status
        self.status = new_status
        if new_status in (LeadStatus.WON, LeadStatus.LOST):
            self.close_date = when
        self.add_interaction(
            InteractionType.NOTE,
            f"Status changed from {old_status.value} to {new_status.value}",
            reason,
            when
        )

    def reassign_to(self, new_agent_id: str, reason: str, when: Optional[datetime] = None) -> ReassignmentRecord:
        """Hand the lead to another agent, keeping the assignment history."""
        when = as_utc(when) or utcnow()
        record = ReassignmentRecord(self.agent_id, new_agent_id, reason, when)
        self.reassignment_history.append(record)
        self.agent_id = new_agent_id
        self.assigned_at = when
        self.add_interaction(InteractionType.NOTE, f"Lead reassigned: {reason}", when=when)
        return record

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'agent_id': self.agent_id,
            'company_name': self.company_name,
            'status': self.status.value,
            'temperature': self.temperature.value,
            'urgency': self.urgency.value,
            'estimated_value': self.estimated_value,
            'final_value': self.final_value,
            'interaction_count': self.interaction_count,
            'last_contact_date': _iso(self.last_contact_date),
            'assigned_at': _iso(self.assigned_at),
            'close_date': _iso(self.close_date),
            'interactions': [
                {
                    'type': i.type.value,
                    'description': i.description,
                    'outcome': i.outcome,
                    'date': i.date.isoformat()
                }
                for i in self.interactions
            ],
            'reassignment_history': [
                {
                    'from_agent': r.from_agent,
                    'to_agent': r.to_agent,
                    'reason': r.reason,
                    'date': r.date.isoformat()
                }
                for r in self.reassignment_history
            ]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Lead":
        return cls(
            id=data['id'],
            agent_id=data['agent_id'],
            company_name=data.get('company_name', ''),
            status=LeadStatus(data.get('status', 'new')),
            temperature=LeadTemperature(data.get('temperature', 'cold')),
            urgency=LeadUrgency(data.get('urgency', 'medium')),
            estimated_value=data.get('estimated_value'),
            final_value=data.get('final_value'),
            interaction_count=data.get('interaction_count', 0),
            last_contact_date=_parse(data.get('last_contact_date')),
            assigned_at=_parse(data.get('assigned_at')) or utcnow(),
            close_date=_parse(data.get('close_date')),
            interactions=[
                Interaction(
                    type=InteractionType(i['type']),
                    description=i['description'],
                    outcome=i.get('outcome', ''),
                    date=_parse(i['date'])
                )
                for i in data.get('interactions', [])
            ],
            reassignment_history=[
                ReassignmentRecord(r['from_agent'], r['to_agent'], r.get('reason', ''), _parse(r['date']))
                for r in data.get('reassignment_history', [])
            ]
        )


@dataclass
class TierChangeRecord:
    """An entry in an agent's tier history."""

    tier: str
    effective_date: datetime
    reason: str = ""


@dataclass
class Agent:
    """A referral sales agent."""

    id: str
    name: str = ""
    tier: str = "bronze"
    tier_points: int = 0
    region: str = ""
    status: AgentStatus = AgentStatus.ACTIVE
    total_leads: int = 0
    converted_leads: int = 0
    conversion_rate: Optional[float] = None
    total_commissions_earned: float = 0
    total_revenue: float = 0
    experience_years: Optional[float] = None
    supplier_connections: Optional[int] = None
    buyer_connections: Optional[int] = None
    last_active_at: Optional[datetime] = None
    tier_history: List[TierChangeRecord] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == AgentStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'tier': self.tier,
            'tier_points': self.tier_points,
            'region': self.region,
            'status': self.status.value,
            'total_leads': self.total_leads,
            'converted_leads': self.converted_leads,
            'conversion_rate': self.conversion_rate,
            'total_commissions_earned': self.total_commissions_earned,
            'total_revenue': self.total_revenue,
            'experience_years': self.experience_years,
            'supplier_connections': self.supplier_connections,
            'buyer_connections': self.buyer_connections,
            'last_active_at': _iso(self.last_active_at),
            'tier_history': [
                {'tier': t.tier, 'effective_date': t.effective_date.isoformat(), 'reason': t.reason}
                for t in self.tier_history
            ],
            'created_at': _iso(self.created_at)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Agent":
        return cls(
            id=data['id'],
            name=data.get('name', ''),
            tier=data.get('tier', 'bronze'),
            tier_points=data.get('tier_points', 0),
            region=data.get('region', ''),
            status=AgentStatus(data.get('status', 'active')),
            total_leads=data.get('total_leads', 0),
            converted_leads=data.get('converted_leads', 0),
            conversion_rate=data.get('conversion_rate'),
            total_commissions_earned=data.get('total_commissions_earned', 0),
            total_revenue=data.get('total_revenue', 0),
            experience_years=data.get('experience_years'),
            supplier_connections=data.get('supplier_connections'),
            buyer_connections=data.get('buyer_connections'),
            last_active_at=_parse(data.get('last_active_at')),
            tier_history=[
                TierChangeRecord(t['tier'], _parse(t['effective_date']), t.get('reason', ''))
                for t in data.get('tier_history', [])
            ],
            created_at=_parse(data.get('created_at')) or utcnow()
        )


@dataclass
class Adjustment:
    """A bonus or penalty line on a commission award."""

    kind: str
    amount: float
    reason: str = ""


@dataclass
class CommissionAward:
    """Commission earned by an agent for one converted lead."""

    id: str
    agent_id: str
    lead_id: str
    transaction_value: float
    base_amount: float
    rate: float
    tier: str
    tier_multiplier: float
    bonuses: List[Adjustment] = field(default_factory=list)
    penalties: List[Adjustment] = field(default_factory=list)
    total_amount: float = 0
    status: CommissionStatus = CommissionStatus.PENDING
    calculated_at: datetime = field(default_factory=utcnow)
    payout_date: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    dispute_reason: str = ""
    dispute_resolution: str = ""
    batch_id: Optional[str] = None
    breakdown: str = ""

    @property
    def bonus_total(self) -> float:
        return sum(b.amount for b in self.bonuses)

    @property
    def penalty_total(self) -> float:
        return sum(p.amount for p in self.penalties)

    @property
    def is_payable(self) -> bool:
        return self.status in PAYABLE_STATUSES and self.batch_id is None

    def transition(self, new_status: CommissionStatus, when: Optional[datetime] = None, note: str = ""):
        """Apply a status change, enforcing the award lifecycle.

        Repeating the current status is a no-op so approval and settlement
        steps can be retried safely.
        """
        if new_status == self.status:
            return
        if new_status not in ALLOWED_TRANSITIONS[self.status]:
            raise ValidationError(
                f"Commission {self.id} cannot move from {self.status.value} to {new_status.value}"
            )

        when = as_utc(when) or utcnow()
        if new_status == CommissionStatus.APPROVED:
            if self.status == CommissionStatus.DISPUTED:
                self.dispute_resolution = note
            self.approved_at = self.approved_at or when
        elif new_status == CommissionStatus.PAID:
            self.paid_at = when
        elif new_status == CommissionStatus.DISPUTED:
            self.dispute_reason = note
        elif new_status == CommissionStatus.CANCELLED:
            self.dispute_resolution = note
        self.status = new_status

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'agent_id': self.agent_id,
            'lead_id': self.lead_id,
            'transaction_value': self.transaction_value,
            'base_amount': self.base_amount,
            'rate': self.rate,
            'tier': self.tier,
            'tier_multiplier': self.tier_multiplier,
            'bonuses': [{'kind': b.kind, 'amount': b.amount, 'reason': b.reason} for b in self.bonuses],
            'penalties': [{'kind': p.kind, 'amount': p.amount, 'reason': p.reason} for p in self.penalties],
            'total_amount': self.total_amount,
            'status': self.status.value,
            'calculated_at': _iso(self.calculated_at),
            'payout_date': _iso(self.payout_date),
            'approved_at': _iso(self.approved_at),
            'paid_at': _iso(self.paid_at),
            'dispute_reason': self.dispute_reason,
            'dispute_resolution': self.dispute_resolution,
            'batch_id': self.batch_id,
            'breakdown': self.breakdown
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommissionAward":
        return cls(
            id=data['id'],
            agent_id=data['agent_id'],
            lead_id=data['lead_id'],
            transaction_value=data['transaction_value'],
            base_amount=data['base_amount'],
            rate=data['rate'],
            tier=data['tier'],
            tier_multiplier=data['tier_multiplier'],
            bonuses=[Adjustment(**b) for b in data.get('bonuses', [])],
            penalties=[Adjustment(**p) for p in data.get('penalties', [])],
            total_amount=data.get('total_amount', 0),
            status=CommissionStatus(data.get('status', 'pending')),
            calculated_at=_parse(data.get('calculated_at')) or utcnow(),
            payout_date=_parse(data.get('payout_date')),
            approved_at=_parse(data.get('approved_at')),
            paid_at=_parse(data.get('paid_at')),
            dispute_reason=data.get('dispute_reason', ''),
            dispute_resolution=data.get('dispute_resolution', ''),
            batch_id=data.get('batch_id'),
            breakdown=data.get('breakdown', '')
        )


@dataclass(frozen=True)
class Period:
    """A closed time range with its granularity."""

    period_type: PeriodType
    start: datetime
    end: datetime

    @property
    def key(self) -> str:
        return f"{self.start.isoformat()}:{self.end.isoformat()}"

    def contains(self, moment: Optional[datetime]) -> bool:
        if moment is None:
            return False
        return self.start <= as_utc(moment) <= self.end


@dataclass
class PerformanceMetrics:
    """Aggregated metrics for one agent over one period."""

    agent_id: str
    period: Period

    # Revenue
    total_revenue: float = 0
    commission_earned: float = 0
    average_commission_per_lead: float = 0
    revenue_growth: float = 0

    # Conversion
    leads_generated: int = 0
    leads_converted: int = 0
    conversion_rate: float = 0
    average_lead_value: float = 0

    # Quality (injected)
    customer_satisfaction: float = 0
    retention_rate: float = 0
    refund_rate: float = 0
    complaint_rate: float = 0

    # Activity (injected)
    active_days: int = 0
    average_response_time_hours: float = 0
    follow_up_rate: float = 0


@dataclass
class PayoutFee:
    type: str
    amount: float


@dataclass
class PayoutBatch:
    """One disbursement grouping an agent's payable commissions."""

    id: str
    agent_id: str
    period: Period
    commission_ids: List[str]
    total_amount: float
    fees: List[PayoutFee]
    net_amount: float
    status: PayoutStatus = PayoutStatus.PENDING
    payment_method: str = "bank_transfer"
    payment_reference: str = ""
    created_at: datetime = field(default_factory=utcnow)
    processed_at: Optional[datetime] = None

    @property
    def fee_total(self) -> float:
        return sum(f.amount for f in self.fees)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'agent_id': self.agent_id,
            'period': {
                'type': self.period.period_type.value,
                'start': self.period.start.isoformat(),
                'end': self.period.end.isoformat()
            },
            'commission_ids': list(self.commission_ids),
            'total_amount': self.total_amount,
            'fees': [{'type': f.type, 'amount': f.amount} for f in self.fees],
            'net_amount': self.net_amount,
            'status': self.status.value,
            'payment_method': self.payment_method,
            'payment_reference': self.payment_reference,
            'created_at': _iso(self.created_at),
            'processed_at': _iso(self.processed_at)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PayoutBatch":
        period = data['period']
        return cls(
            id=data['id'],
            agent_id=data['agent_id'],
            period=Period(PeriodType(period['type']), _parse(period['start']), _parse(period['end'])),
            commission_ids=list(data.get('commission_ids', [])),
            total_amount=data['total_amount'],
            fees=[PayoutFee(**f) for f in data.get('fees', [])],
            net_amount=data['net_amount'],
            status=PayoutStatus(data.get('status', 'pending')),
            payment_method=data.get('payment_method', 'bank_transfer'),
            payment_reference=data.get('payment_reference', ''),
            created_at=_parse(data.get('created_at')) or utcnow(),
            processed_at=_parse(data.get('processed_at'))
        )


@dataclass
class AgentFailure:
    """An agent skipped by a batch job, with the reason."""

    agent_id: str
    reason: str


@dataclass
class LeaderboardEntry:
    """A ranked agent on a leaderboard."""

    agent_id: str
    score: float
    rank: int = 0
    agent_name: str = ""
    tier: str = ""
    region: str = ""
    metric: str = ""
