"""Commission calculation for converted leads."""

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence

from ..core.config import EngineConfig
from ..errors import ConfigurationError, ValidationError
from ..storage.models import Adjustment, Agent, CommissionAward, CommissionStatus, as_utc, utcnow
from .tiers import TierCatalog

logger = logging.getLogger(__name__)


def to_money(amount: float) -> float:
    """Round a currency amount half-up to cents."""
    return float(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def next_payout_date(converted_at: datetime, payout_day: int = 15) -> datetime:
    """The ``payout_day`` of the calendar month after ``converted_at`` (UTC)."""
    moment = as_utc(converted_at)
    year, month = moment.year, moment.month + 1
    if month > 12:
        year, month = year + 1, 1
    return datetime(year, month, payout_day, tzinfo=timezone.utc)


@dataclass
class LeadContext:
    """Facts about the conversion event that drive bonuses and penalties."""

    lead_id: str
    days_to_convert: Optional[float] = None
    follow_up_delay_hours: float = 0
    prior_award_count: int = 0
    converted_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class FastConversionBonus:
    """Percent of the deal for leads converted quickly."""

    max_days: float = 7
    percent: float = 2.0

    def evaluate(self, transaction_value: float, context: LeadContext, agent: Agent) -> Optional[Adjustment]:
        if context.days_to_convert is None or context.days_to_convert > self.max_days:
            return None
        return Adjustment(
            kind="fast_conversion",
            amount=to_money(transaction_value * self.percent / 100),
            reason=f"Converted within {self.max_days:g} days",
        )


@dataclass(frozen=True)
class HighValueBonus:
    """Percent of the deal for large transactions."""

    threshold: float = 10000
    percent: float = 1.0

    def evaluate(self, transaction_value: float, context: LeadContext, agent: Agent) -> Optional[Adjustment]:
        if transaction_value < self.threshold:
            return None
        return Adjustment(
            kind="high_value",
            amount=to_money(transaction_value * self.percent / 100),
            reason=f"High-value deal of {self.threshold:,.0f} or more",
        )


@dataclass(frozen=True)
class FirstConversionBonus:
    """Flat bonus on an agent's first ever award."""

    amount: float = 100

    def evaluate(self, transaction_value: float, context: LeadContext, agent: Agent) -> Optional[Adjustment]:
        if context.prior_award_count != 0:
            return None
        return Adjustment(kind="first_conversion", amount=self.amount, reason="First successful conversion")


@dataclass(frozen=True)
class LateFollowUpPenalty:
    """Flat deduction when follow-up took too long."""

    max_hours: float = 48
    amount: float = 50

    def evaluate(self, transaction_value: float, context: LeadContext, agent: Agent) -> Optional[Adjustment]:
        if context.follow_up_delay_hours <= self.max_hours:
            return None
        return Adjustment(
            kind="late_follow_up",
            amount=self.amount,
            reason=f"Follow-up delay exceeded {self.max_hours:g} hours",
        )


def default_bonus_rules(config: Optional[EngineConfig] = None) -> List:
    config = config or EngineConfig()
    return [
        FastConversionBonus(config.fast_conversion_days, config.fast_conversion_percent),
        HighValueBonus(config.high_value_threshold, config.high_value_percent),
        FirstConversionBonus(config.first_conversion_bonus),
    ]


def default_penalty_rules(config: Optional[EngineConfig] = None) -> List:
    config = config or EngineConfig()
    return [LateFollowUpPenalty(config.late_follow_up_hours, config.late_follow_up_penalty)]


class CommissionCalculator:
    """Compute commission awards from a tier catalog and rule lists.

    Bonus and penalty rules are evaluated independently, in list order, and
    summed; adding a rule never changes how the others fire.
    """

    def __init__(
        self,
        catalog: TierCatalog,
        bonus_rules: Optional[Sequence] = None,
        penalty_rules: Optional[Sequence] = None,
        payout_day: int = 15
    ):
        if not 1 <= payout_day <= 28:
            raise ConfigurationError(f"Payout day must fall on 1-28, got {payout_day}")
        self.catalog = catalog
        self.bonus_rules = list(bonus_rules) if bonus_rules is not None else default_bonus_rules()
        self.penalty_rules = list(penalty_rules) if penalty_rules is not None else default_penalty_rules()
        self.payout_day = payout_day

    @classmethod
    def from_config(cls, catalog: TierCatalog, config: EngineConfig) -> "CommissionCalculator":
        return cls(
            catalog,
            bonus_rules=default_bonus_rules(config),
            penalty_rules=default_penalty_rules(config),
            payout_day=config.payout_day,
        )

    def calculate(self, transaction_value: float, lead_context: LeadContext, agent: Agent) -> CommissionAward:
        """Calculate the award for one conversion event."""
        if transaction_value is None or not math.isfinite(transaction_value):
            raise ValidationError(f"Transaction value must be a finite number, got {transaction_value!r}")
        if transaction_value < 0:
            raise ValidationError(f"Transaction value cannot be negative: {transaction_value}")

        tier = self.catalog.get(agent.tier)

        base = transaction_value * tier.base_rate / 100

        bonuses = self._apply(self.bonus_rules, transaction_value, lead_context, agent)
        penalties = self._apply(self.penalty_rules, transaction_value, lead_context, agent)

        bonus_total = sum(b.amount for b in bonuses)
        penalty_total = sum(p.amount for p in penalties)
        final = to_money(max(0, base + bonus_total - penalty_total) * tier.bonus_multiplier)

        award = CommissionAward(
            id=str(uuid.uuid4())[:12],
            agent_id=agent.id,
            lead_id=lead_context.lead_id,
            transaction_value=transaction_value,
            base_amount=to_money(base),
            rate=tier.base_rate,
            tier=tier.name,
            tier_multiplier=tier.bonus_multiplier,
            bonuses=bonuses,
            penalties=penalties,
            total_amount=final,
            status=CommissionStatus.PENDING,
            calculated_at=as_utc(lead_context.converted_at),
            payout_date=next_payout_date(lead_context.converted_at, self.payout_day),
        )
        award.breakdown = self.explain(award)
        return award

    @staticmethod
    def _apply(rules: Sequence, transaction_value: float, context: LeadContext, agent: Agent) -> List[Adjustment]:
        adjustments = []
        for rule in rules:
            result = rule.evaluate(transaction_value, context, agent)
            if result is not None:
                adjustments.append(result)
        return adjustments

    @staticmethod
    def explain(award: CommissionAward) -> str:
        """Human-readable calculation trail for an award."""
        lines = [
            f"Base: {award.transaction_value:,.2f} x {award.rate:g}% = {award.base_amount:,.2f}",
        ]
        if award.bonuses:
            lines.append("Bonuses: " + ", ".join(f"{b.kind} +{b.amount:,.2f}" for b in award.bonuses))
        else:
            lines.append("Bonuses: none")
        if award.penalties:
            lines.append("Penalties: " + ", ".join(f"{p.kind} -{p.amount:,.2f}" for p in award.penalties))
        else:
            lines.append("Penalties: none")
        lines.append(
            f"Final: max(0, {award.base_amount:,.2f} + {award.bonus_total:,.2f} - {award.penalty_total:,.2f})"
            f" x {award.tier_multiplier:g} ({award.tier}) = {award.total_amount:,.2f}"
        )
        return "\n".join(lines)
