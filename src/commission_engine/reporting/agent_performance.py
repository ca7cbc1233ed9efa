"""Agent performance aggregation over calendar periods."""

import calendar
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Protocol

from ..core.config import EngineConfig
from ..errors import ValidationError
from ..storage.models import (
    CommissionStatus,
    LeadStatus,
    Period,
    PeriodType,
    PerformanceMetrics,
    as_utc,
    utcnow,
)
from ..team.commissions import to_money

logger = logging.getLogger(__name__)

ONE_TICK = timedelta(microseconds=1)

QUALITY_FIELDS = ("customer_satisfaction", "retention_rate", "refund_rate", "complaint_rate")
ACTIVITY_FIELDS = ("active_days", "average_response_time_hours", "follow_up_rate")

# Awards that still count toward revenue
COUNTED_STATUSES = (
    CommissionStatus.PENDING,
    CommissionStatus.APPROVED,
    CommissionStatus.PAID,
    CommissionStatus.DISPUTED,
)


def resolve_period(
    period_type: PeriodType,
    now: Optional[datetime] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None
) -> Period:
    """Calendar period containing ``now`` (UTC), or the explicit range given."""
    period_type = PeriodType(period_type)
    if start is not None or end is not None:
        if start is None or end is None:
            raise ValidationError("Both start and end are required for a custom period")
        start, end = as_utc(start), as_utc(end)
        if start > end:
            raise ValidationError(f"Period start {start} is after end {end}")
        return Period(period_type, start, end)

    now = as_utc(now) or utcnow()
    day = datetime(now.year, now.month, now.day, tzinfo=timezone.utc)

    if period_type == PeriodType.DAILY:
        begin, finish = day, day + timedelta(days=1)
    elif period_type == PeriodType.WEEKLY:
        begin = day - timedelta(days=day.weekday())
        finish = begin + timedelta(days=7)
    elif period_type == PeriodType.MONTHLY:
        begin = day.replace(day=1)
        finish = begin + timedelta(days=calendar.monthrange(now.year, now.month)[1])
    elif period_type == PeriodType.QUARTERLY:
        quarter_month = ((now.month - 1) // 3) * 3 + 1
        begin = day.replace(month=quarter_month, day=1)
        if quarter_month == 10:
            finish = begin.replace(year=now.year + 1, month=1)
        else:
            finish = begin.replace(month=quarter_month + 3)
    else:
        begin = day.replace(month=1, day=1)
        finish = begin.replace(year=now.year + 1)

    return Period(period_type, begin, finish - ONE_TICK)


def previous_period(period: Period) -> Period:
    """The range of equal length immediately before ``period``."""
    length = period.end - period.start
    prev_end = period.start - ONE_TICK
    return Period(period.period_type, prev_end - length, prev_end)


class MetricsSource(Protocol):
    """Supplies quality and activity figures from external systems."""

    def quality(self, agent_id: str, period: Period) -> Dict[str, float]: ...

    def activity(self, agent_id: str, period: Period) -> Dict[str, float]: ...


class StaticMetricsSource:
    """Metrics source backed by fixed per-agent values (zeros when unknown)."""

    def __init__(
        self,
        quality: Optional[Dict[str, Dict[str, float]]] = None,
        activity: Optional[Dict[str, Dict[str, float]]] = None
    ):
        self._quality = quality or {}
        self._activity = activity or {}

    def quality(self, agent_id: str, period: Period) -> Dict[str, float]:
        return dict(self._quality.get(agent_id, {}))

    def activity(self, agent_id: str, period: Period) -> Dict[str, float]:
        return dict(self._activity.get(agent_id, {}))

    def set_quality(self, agent_id: str, **values: float):
        self._quality.setdefault(agent_id, {}).update(values)

    def set_activity(self, agent_id: str, **values: float):
        self._activity.setdefault(agent_id, {}).update(values)


class PerformanceAggregator:
    """Compute per-agent period metrics from the lead store and ledger.

    Results depend only on stored data and the injected metrics source, so
    repeated calls for the same inputs return identical metrics. Results are
    cached with a TTL chosen by period granularity.
    """

    def __init__(
        self,
        leads,
        ledger,
        cache=None,
        metrics_source: Optional[MetricsSource] = None,
        config: Optional[EngineConfig] = None
    ):
        self.leads = leads
        self.ledger = ledger
        self.cache = cache
        self.metrics_source = metrics_source or StaticMetricsSource()
        self.config = config or EngineConfig()

    @staticmethod
    def cache_key(agent_id: str, period: Period) -> str:
        return f"agent_metrics:{agent_id}:{period.period_type.value}:{period.key}"

    def get_metrics(self, agent_id: str, period: Period) -> PerformanceMetrics:
        """Cached metrics for one agent and period."""
        key = self.cache_key(agent_id, period)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        logger.debug(f"Metrics cache miss for {key}")
        metrics = self.aggregate(agent_id, period)

        if self.cache is not None:
            self.cache.set(
                key,
                metrics,
                self.config.ttl_for_period(period.period_type.value),
                tags=["agent_metrics", f"agent:{agent_id}", period.period_type.value],
            )
        return metrics

    def invalidate_agent(self, agent_id: str) -> int:
        if self.cache is None:
            return 0
        return self.cache.invalidate_by_tag(f"agent:{agent_id}")

    def aggregate(self, agent_id: str, period: Period) -> PerformanceMetrics:
        """Compute metrics without touching the cache."""
        metrics = PerformanceMetrics(agent_id=agent_id, period=period)

        revenue = self._revenue_metrics(agent_id, period)
        conversion = self._conversion_metrics(agent_id, period)
        external = self._external_metrics(agent_id, period)

        for values in (revenue, conversion, external):
            for name, value in values.items():
                setattr(metrics, name, value)
        return metrics

    def _awards(self, agent_id: str, period: Period):
        return self.ledger.find({
            'agent_id': agent_id,
            'statuses': COUNTED_STATUSES,
            'calculated_between': (period.start, period.end),
        })

    def _revenue_metrics(self, agent_id: str, period: Period) -> Dict[str, Any]:
        awards = self._awards(agent_id, period)
        total_revenue = sum(a.transaction_value for a in awards)
        commission_earned = sum(a.total_amount for a in awards)

        previous = self._awards(agent_id, previous_period(period))
        previous_revenue = sum(a.transaction_value for a in previous)
        growth = 0.0
        if previous_revenue > 0:
            growth = round((total_revenue - previous_revenue) / previous_revenue * 100, 2)

        return {
            'total_revenue': to_money(total_revenue),
            'commission_earned': to_money(commission_earned),
            'average_commission_per_lead': to_money(commission_earned / len(awards)) if awards else 0,
            'revenue_growth': growth,
        }

    def _conversion_metrics(self, agent_id: str, period: Period) -> Dict[str, Any]:
        leads = self.leads.find({
            'agent_id': agent_id,
            'assigned_between': (period.start, period.end),
        })
        converted = [l for l in leads if l.status == LeadStatus.WON]
        converted_value = sum(l.final_value or l.estimated_value or 0 for l in converted)

        return {
            'leads_generated': len(leads),
            'leads_converted': len(converted),
            'conversion_rate': round(len(converted) / len(leads) * 100, 2) if leads else 0,
            'average_lead_value': to_money(converted_value / len(converted)) if converted else 0,
        }

    def _external_metrics(self, agent_id: str, period: Period) -> Dict[str, Any]:
        values = {}
        quality = self.metrics_source.quality(agent_id, period) or {}
        activity = self.metrics_source.activity(agent_id, period) or {}

        for name in QUALITY_FIELDS:
            values[name] = float(quality.get(name, 0) or 0)
        for name in ACTIVITY_FIELDS:
            values[name] = float(activity.get(name, 0) or 0)
        values['active_days'] = int(values['active_days'])
        return values
