"""Lead and agent scoring primitives.

All functions here are pure: they read the snapshot they are given plus an
explicit ``now`` and never touch storage, so they are safe to call from any
thread.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from ..storage.models import Agent, Lead, LeadStatus, LeadTemperature, LeadUrgency, as_utc, utcnow

URGENCY_WEIGHTS: Dict[LeadUrgency, int] = {
    LeadUrgency.URGENT: 30,
    LeadUrgency.HIGH: 20,
    LeadUrgency.MEDIUM: 10,
    LeadUrgency.LOW: 5,
}

TEMPERATURE_WEIGHTS: Dict[LeadTemperature, int] = {
    LeadTemperature.HOT: 30,
    LeadTemperature.WARM: 20,
    LeadTemperature.COLD: 10,
}

STATUS_PROBABILITIES: Dict[LeadStatus, float] = {
    LeadStatus.NEW: 0.10,
    LeadStatus.CONTACTED: 0.15,
    LeadStatus.QUALIFIED: 0.30,
    LeadStatus.NEGOTIATING: 0.60,
    LeadStatus.PROPOSAL_SENT: 0.70,
    LeadStatus.WON: 1.0,
    LeadStatus.LOST: 0.0,
    LeadStatus.DORMANT: 0.05,
}

TEMPERATURE_MULTIPLIERS: Dict[LeadTemperature, float] = {
    LeadTemperature.HOT: 1.5,
    LeadTemperature.WARM: 1.2,
    LeadTemperature.COLD: 0.8,
}

PERFORMANCE_WEIGHTS = {
    "conversion": 0.4,
    "experience": 0.3,
    "network": 0.2,
    "activity": 0.1,
}


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up."""
    return int(math.floor(value + 0.5))


def _clamp(value: int, low: int = 0, high: int = 100) -> int:
    return max(low, min(value, high))


def lead_score_components(lead: Lead, now: Optional[datetime] = None) -> Dict[str, float]:
    """Individual contributions that make up a lead score."""
    now = as_utc(now) or utcnow()

    value_part = 0.0
    if lead.estimated_value:
        value_part = min(max(lead.estimated_value, 0) / 1000, 50)

    interaction_part = 0
    if lead.interaction_count > 0:
        interaction_part = min(lead.interaction_count * 2, 20)

    recency_part = 0
    days = lead.days_since_contact(now)
    if days is not None:
        recency_part = max(20 - days, 0)

    return {
        "value": value_part,
        "urgency": URGENCY_WEIGHTS.get(lead.urgency, 0),
        "temperature": TEMPERATURE_WEIGHTS.get(lead.temperature, 0),
        "interactions": interaction_part,
        "recency": recency_part,
    }


def lead_score(lead: Lead, now: Optional[datetime] = None) -> int:
    """Prioritization score in [0, 100]."""
    raw = sum(lead_score_components(lead, now).values())
    return _clamp(round_half_up(raw))


def conversion_probability(lead: Lead, now: Optional[datetime] = None) -> int:
    """Estimated percent chance that the lead converts, in [0, 100]."""
    now = as_utc(now) or utcnow()

    probability = STATUS_PROBABILITIES.get(lead.status, 0.10)
    probability *= TEMPERATURE_MULTIPLIERS.get(lead.temperature, 1.0)

    if lead.interaction_count > 5:
        probability *= 1.3
    elif lead.interaction_count > 2:
        probability *= 1.1

    age = lead.days_in_pipeline(now)
    if age > 90:
        probability *= 0.5
    elif age > 30:
        probability *= 0.8

    return _clamp(round_half_up(probability * 100))


def performance_score(agent: Agent, now: Optional[datetime] = None) -> int:
    """Weighted agent performance score in [0, 100].

    Missing inputs contribute nothing rather than raising.
    """
    now = as_utc(now) or utcnow()

    conversion = min(max(agent.conversion_rate or 0, 0), 100)
    experience = min(max(agent.experience_years or 0, 0) / 10 * 100, 100)
    connections = (agent.supplier_connections or 0) + (agent.buyer_connections or 0)
    network = min(max(connections, 0) / 20 * 100, 100)

    activity = 0
    if agent.last_active_at is not None:
        days_inactive = math.floor((now - as_utc(agent.last_active_at)).total_seconds() / 86400)
        activity = max(100 - days_inactive * 5, 0)

    score = (
        conversion * PERFORMANCE_WEIGHTS["conversion"]
        + experience * PERFORMANCE_WEIGHTS["experience"]
        + network * PERFORMANCE_WEIGHTS["network"]
        + activity * PERFORMANCE_WEIGHTS["activity"]
    )
    return _clamp(round_half_up(score))


@dataclass
class LeadScoreResult:
    """Score and conversion estimate for one lead."""

    lead_id: str
    score: int
    conversion_probability: int
    components: Dict[str, float] = field(default_factory=dict)

    @property
    def priority(self) -> str:
        """Bucket used for work queues."""
        if self.score >= 75:
            return "high"
        elif self.score >= 40:
            return "medium"
        return "low"

    @property
    def summary(self) -> str:
        parts = [
            f"{name} +{value:g}"
            for name, value in sorted(self.components.items(), key=lambda x: x[1], reverse=True)
            if value > 0
        ]
        return ", ".join(parts[:3]) if parts else "No scoring signals"


class LeadScorer:
    """Scores leads for prioritization at a fixed point in time."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = as_utc(now)

    def _now(self) -> datetime:
        return self.now or utcnow()

    def score(self, lead: Lead) -> LeadScoreResult:
        now = self._now()
        return LeadScoreResult(
            lead_id=lead.id,
            score=lead_score(lead, now),
            conversion_probability=conversion_probability(lead, now),
            components=lead_score_components(lead, now),
        )

    def prioritize(self, leads: List[Lead], include_closed: bool = False) -> List[LeadScoreResult]:
        """Score open leads, best first; ties broken by lead id."""
        results = [
            self.score(lead) for lead in leads
            if include_closed or not lead.is_closed
        ]
        results.sort(key=lambda r: (-r.score, -r.conversion_probability, r.lead_id))
        return results

    def explain_score(self, result: LeadScoreResult) -> str:
        """Get a detailed explanation of a scoring result."""
        lines = [
            f"Lead {result.lead_id}: {result.score}/100 ({result.priority.upper()})",
            f"Conversion probability: {result.conversion_probability}%",
            "",
            "Components:",
        ]
        for name, value in result.components.items():
            lines.append(f"  {name}: +{value:g}")
        raw = sum(result.components.values())
        if raw > 100:
            lines.extend(["", f"Raw total {raw:g} capped at 100"])
        return "\n".join(lines)
