"""Commission service: the operations exposed to the API and CLI."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..core.config import EngineConfig
from ..core.scoring import LeadScorer, LeadScoreResult
from ..errors import CommissionEngineError, NotFound, ValidationError
from ..notifications import LoggingNotifier
from ..reporting import (
    PerformanceAggregator,
    build_agent_commission_summary,
    build_commission_report,
    resolve_period,
)
from ..reporting.agent_performance import MetricsSource
from ..storage.cache import TTLCache
from ..storage.interfaces import AgentStore, Cache, CommissionLedger, LeadStore, NotificationDispatcher
from ..storage.memory import InMemoryAgentStore, InMemoryCommissionLedger, InMemoryLeadStore
from ..storage.models import (
    Agent,
    AgentFailure,
    CommissionAward,
    CommissionStatus,
    InteractionType,
    Lead,
    LeadStatus,
    LeaderboardMetric,
    PayoutBatch,
    PerformanceMetrics,
    PeriodType,
    TierChangeRecord,
    as_utc,
    utcnow,
)
from ..team import (
    CommissionCalculator,
    LeadContext,
    LeaderboardRanker,
    Leaderboards,
    PayoutBatcher,
    PayoutRun,
    TierCatalog,
    metric_score,
    to_money,
)

logger = logging.getLogger(__name__)


def _enum(enum_cls, value):
    """Parse a caller-supplied enum value, raising ValidationError if unknown."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = [m.value for m in enum_cls]
        raise ValidationError(f"Invalid {enum_cls.__name__} {value!r}, expected one of {allowed}")


def _conversion_rate(converted: int, total: int, current: Optional[float] = None) -> Optional[float]:
    """Converted leads as a percentage of leads handled; unchanged while no leads are counted."""
    if total <= 0:
        return current
    return round(converted / total * 100, 2)


@dataclass
class TierChange:
    """Result of re-evaluating an agent's tier."""

    agent_id: str
    old_tier: str
    new_tier: str

    @property
    def changed(self) -> bool:
        return self.old_tier != self.new_tier


class CommissionService:
    """Wires the stores, cache and notifier to the commission components."""

    def __init__(
        self,
        agents: AgentStore,
        leads: LeadStore,
        ledger: CommissionLedger,
        cache: Optional[Cache] = None,
        notifier: Optional[NotificationDispatcher] = None,
        config: Optional[EngineConfig] = None,
        catalog: Optional[TierCatalog] = None,
        metrics_source: Optional[MetricsSource] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.agents = agents
        self.leads = leads
        self.ledger = ledger
        self.cache = cache if cache is not None else TTLCache()
        self.notifier = notifier or LoggingNotifier()
        self.config = config or EngineConfig()
        self.clock = clock

        self.catalog = catalog or TierCatalog.from_config(self.config.tiers)
        self.calculator = CommissionCalculator.from_config(self.catalog, self.config)
        self.aggregator = PerformanceAggregator(
            leads, ledger, cache=self.cache, metrics_source=metrics_source, config=self.config
        )
        self.batcher = PayoutBatcher(
            ledger, self.config.processing_fee_percent, self.config.processing_fee_cap
        )
        self.ranker = LeaderboardRanker(self.config.leaderboard_limit, self.config.leaderboard_group_limit)

    @classmethod
    def from_storage_path(cls, storage_path: str, **kwargs) -> "CommissionService":
        """Service over JSON files in ``storage_path``."""
        return cls(
            InMemoryAgentStore(storage_path),
            InMemoryLeadStore(storage_path),
            InMemoryCommissionLedger(storage_path),
            **kwargs
        )

    def _now(self, now: Optional[datetime] = None) -> datetime:
        return as_utc(now) or as_utc(self.clock())

    def _notify(self, agent_id: str, event_type: str, payload: Dict[str, Any]):
        try:
            self.notifier.notify(agent_id, event_type, payload)
        except Exception as e:
            logger.error(f"Notification {event_type} for {agent_id} failed: {e}")

    def _invalidate(self, agent_id: str):
        self.aggregator.invalidate_agent(agent_id)
        self.cache.invalidate_by_tag("leaderboards")

    # Commissions

    def calculate_commission(
        self,
        lead_id: str,
        final_amount: float,
        conversion_context: Optional[Dict[str, Any]] = None
    ) -> CommissionAward:
        """Calculate and record the pending award for a converted lead.

        ``conversion_context`` may carry ``converted_at``,
        ``follow_up_delay_hours`` and ``days_to_convert``; days to convert
        default to the time since the lead was assigned. Lost or dormant
        leads, and leads that already hold a live award, are rejected. On
        success the lead is closed as won at the conversion time. Nothing is
        written unless the calculation succeeds.
        """
        context = conversion_context or {}
        lead = self.leads.get(lead_id)
        if lead.status in (LeadStatus.LOST, LeadStatus.DORMANT):
            raise ValidationError(f"Lead {lead.id} is {lead.status.value} and cannot earn a commission")
        existing = [
            a for a in self.ledger.find({'lead_id': lead.id})
            if a.status != CommissionStatus.CANCELLED
        ]
        if existing:
            raise ValidationError(f"Lead {lead.id} already has commission {existing[0].id}")
        agent = self.agents.get(lead.agent_id)

        converted_at = self._now(context.get('converted_at'))
        days_to_convert = context.get('days_to_convert')
        if days_to_convert is None:
            days_to_convert = (converted_at - as_utc(lead.assigned_at)).total_seconds() / 86400

        lead_context = LeadContext(
            lead_id=lead.id,
            days_to_convert=days_to_convert,
            follow_up_delay_hours=float(context.get('follow_up_delay_hours') or 0),
            prior_award_count=self.ledger.count(agent.id),
            converted_at=converted_at,
        )
        award = self.calculator.calculate(final_amount, lead_context, agent)

        self.ledger.insert(award)
        if lead.status != LeadStatus.WON:
            lead.update_status(LeadStatus.WON, f"Commission {award.id} calculated", converted_at)
        lead.close_date = converted_at
        lead.final_value = to_money(final_amount)
        self.leads.save(lead)

        converted = agent.converted_leads + 1
        self.agents.update(agent.id, {
            'converted_leads': converted,
            'conversion_rate': _conversion_rate(converted, agent.total_leads, agent.conversion_rate),
            'tier_points': agent.tier_points + self.config.conversion_tier_points,
            'total_commissions_earned': to_money(agent.total_commissions_earned + award.total_amount),
            'total_revenue': to_money(agent.total_revenue + final_amount),
            'last_active_at': converted_at,
        })
        self._invalidate(agent.id)

        logger.info(f"Commission {award.id} for agent {agent.id}: {award.total_amount:.2f} ({award.tier})")
        self._notify(agent.id, "commission_calculated", {
            'commission_id': award.id,
            'lead_id': lead.id,
            'amount': award.total_amount,
            'payout_date': award.payout_date.isoformat(),
        })
        return award

    def approve_commission(self, commission_id: str, note: str = "") -> CommissionAward:
        award = self.ledger.update_status(commission_id, CommissionStatus.APPROVED, note, when=self._now())
        self._invalidate(award.agent_id)
        self._notify(award.agent_id, "commission_approved", {'commission_id': award.id})
        return award

    def approve_pending_commissions(self, limit: Optional[float] = None) -> List[CommissionAward]:
        """Approve every pending award whose total is at most ``limit``.

        ``limit`` defaults to ``auto_approve_limit``. Larger awards stay
        pending for manual review.
        """
        limit = self.config.auto_approve_limit if limit is None else limit
        approved = []
        for award in self.ledger.find({'statuses': [CommissionStatus.PENDING]}):
            if award.total_amount > limit:
                continue
            try:
                approved.append(self.approve_commission(award.id, "Auto-approved: under threshold"))
            except ValidationError as e:
                logger.warning(f"Auto-approval skipped {award.id}: {e}")

        logger.info(f"Auto-approved {len(approved)} commissions at or under {limit:.2f}")
        return approved

    def overdue_commissions(self, agent_id: Optional[str] = None) -> List[CommissionAward]:
        """Approved awards still unpaid ``overdue_after_days`` after approval."""
        cutoff = self._now() - timedelta(days=self.config.overdue_after_days)
        query: Dict[str, Any] = {'statuses': [CommissionStatus.APPROVED]}
        if agent_id:
            query['agent_id'] = agent_id
        return [
            a for a in self.ledger.find(query)
            if a.paid_at is None and a.approved_at is not None and as_utc(a.approved_at) <= cutoff
        ]

    def dispute_commission(self, commission_id: str, reason: str) -> CommissionAward:
        award = self.ledger.update_status(commission_id, CommissionStatus.DISPUTED, reason, when=self._now())
        logger.warning(f"Commission {commission_id} disputed: {reason}")
        self._invalidate(award.agent_id)
        self._notify(award.agent_id, "commission_disputed", {'commission_id': award.id, 'reason': reason})
        return award

    def resolve_dispute(self, commission_id: str, approve: bool, resolution: str = "") -> CommissionAward:
        """Approve or cancel a disputed award. Cancelling reverses the agent's totals."""
        current = self.ledger.get(commission_id)
        if current.status != CommissionStatus.DISPUTED:
            raise ValidationError(f"Commission {commission_id} is not disputed ({current.status.value})")

        status = CommissionStatus.APPROVED if approve else CommissionStatus.CANCELLED
        award = self.ledger.update_status(commission_id, status, resolution, when=self._now())

        if status == CommissionStatus.CANCELLED:
            agent = self.agents.get(award.agent_id)
            converted = max(0, agent.converted_leads - 1)
            self.agents.update(agent.id, {
                'converted_leads': converted,
                'conversion_rate': _conversion_rate(converted, agent.total_leads, agent.conversion_rate),
                'tier_points': max(0, agent.tier_points - self.config.conversion_tier_points),
                'total_commissions_earned': to_money(max(0, agent.total_commissions_earned - award.total_amount)),
                'total_revenue': to_money(max(0, agent.total_revenue - award.transaction_value)),
            })

        self._invalidate(award.agent_id)
        self._notify(award.agent_id, "commission_dispute_resolved", {
            'commission_id': award.id,
            'status': award.status.value,
            'resolution': resolution,
        })
        return award

    def get_commission(self, commission_id: str) -> CommissionAward:
        return self.ledger.get(commission_id)

    def list_commissions(self, agent_id: Optional[str] = None, status: Optional[str] = None) -> List[CommissionAward]:
        query: Dict[str, Any] = {}
        if agent_id:
            query['agent_id'] = agent_id
        if status:
            query['statuses'] = [_enum(CommissionStatus, status)]
        return self.ledger.find(query)

    # Performance and tiers

    def get_agent_performance_metrics(
        self,
        agent_id: str,
        period_type: str = "monthly",
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> PerformanceMetrics:
        self.agents.get(agent_id)
        period = resolve_period(_enum(PeriodType, period_type), self._now(), start, end)
        return self.aggregator.get_metrics(agent_id, period)

    def evaluate_agent_tier(self, agent_id: str) -> TierChange:
        """Promote the agent to the highest tier its monthly metrics qualify for."""
        agent = self.agents.get(agent_id)
        metrics = self.get_agent_performance_metrics(agent_id, "monthly")
        new_tier = self.catalog.evaluate_upgrade(metrics, agent.tier)
        change = TierChange(agent_id, agent.tier, new_tier)
        if not change.changed:
            return change

        now = self._now()
        history = list(agent.tier_history) + [
            TierChangeRecord(new_tier, now, f"Upgraded from {agent.tier} on monthly performance")
        ]
        self.agents.update(agent_id, {'tier': new_tier, 'tier_history': history})
        self._invalidate(agent_id)

        logger.info(f"Agent {agent_id} promoted {change.old_tier} -> {change.new_tier}")
        self._notify(agent_id, "tier_upgraded", {
            'old_tier': change.old_tier,
            'new_tier': change.new_tier,
            'benefits': list(self.catalog.get(new_tier).benefits),
        })
        return change

    def evaluate_all_tiers(self) -> List[TierChange]:
        """Re-evaluate every active agent; failures are logged and skipped."""
        changes = []
        for agent in self.agents.find_active():
            try:
                change = self.evaluate_agent_tier(agent.id)
            except CommissionEngineError as e:
                logger.error(f"Tier evaluation failed for {agent.id}: {e}")
                continue
            if change.changed:
                changes.append(change)
        return changes

    def tier_progress(self, agent_id: str) -> Dict[str, Any]:
        agent = self.agents.get(agent_id)
        metrics = self.get_agent_performance_metrics(agent_id, "monthly")
        progress = self.catalog.progress(metrics, agent.tier)
        progress["tier_points"] = agent.tier_points
        return progress

    def add_tier_points(self, agent_id: str, points: int, reason: str) -> Agent:
        """Adjust an agent's tier points. Points are recognition only; tiers follow metrics."""
        agent = self.agents.get(agent_id)
        total = agent.tier_points + int(points)
        if total < 0:
            raise ValidationError(f"Agent {agent_id} has {agent.tier_points} tier points, cannot apply {points}")

        agent = self.agents.update(agent_id, {'tier_points': total})
        logger.info(f"Agent {agent_id} earned {points} tier points for: {reason}")
        return agent

    # Payouts

    def process_commission_payouts(
        self,
        period_type: str = "monthly",
        agent_ids: Optional[Iterable[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> PayoutRun:
        """Batch due commissions for every active agent.

        Explicit ``agent_ids`` are batched whatever their status; unknown ids
        are reported in the run's failures.
        """
        now = self._now()
        period = resolve_period(_enum(PeriodType, period_type), now, start, end)
        unknown: List[AgentFailure] = []
        if agent_ids is None:
            candidates = [a.id for a in self.agents.find_active()]
        else:
            candidates = []
            for agent_id in agent_ids:
                try:
                    candidates.append(self.agents.get(agent_id).id)
                except NotFound as e:
                    logger.warning(f"Payout requested for unknown agent {agent_id}")
                    unknown.append(AgentFailure(agent_id, str(e)))

        run = self.batcher.run(candidates, period, now)
        run.failures.extend(unknown)
        for batch in run.batches:
            self._notify(batch.agent_id, "payout_ready", {
                'batch_id': batch.id,
                'net_amount': batch.net_amount,
                'commission_count': len(batch.commission_ids),
            })
        return run

    def mark_batch_paid(self, batch_id: str, payment_reference: str = "") -> PayoutBatch:
        batch = self.batcher.mark_batch_paid(batch_id, payment_reference, self._now())
        self._invalidate(batch.agent_id)
        self._notify(batch.agent_id, "payout_paid", {
            'batch_id': batch.id,
            'net_amount': batch.net_amount,
            'payment_reference': payment_reference,
        })
        return batch

    # Leaderboards and reports

    def generate_leaderboards(
        self,
        period_type: str = "monthly",
        metric: str = "revenue",
        limit: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> Leaderboards:
        """Rank active agents by one metric over a period.

        A failure computing one agent's metrics leaves that agent out and is
        reported in ``failures``. Only complete results are cached.
        """
        metric = _enum(LeaderboardMetric, metric)
        limit = self.config.leaderboard_limit if limit is None else limit
        period = resolve_period(_enum(PeriodType, period_type), self._now(), start, end)

        cache_key = f"leaderboards:{metric.value}:{period.period_type.value}:{period.key}:{limit}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        agents = {a.id: a for a in self.agents.find_active()}
        scores: Dict[str, float] = {}
        failures: List[AgentFailure] = []
        for agent_id in sorted(agents):
            try:
                metrics = self.aggregator.get_metrics(agent_id, period)
                scores[agent_id] = metric_score(metrics, metric)
            except Exception as e:
                logger.exception(f"Leaderboard metrics failed for agent {agent_id}")
                failures.append(AgentFailure(agent_id, str(e)))

        boards = self.ranker.build(scores, agents, metric, limit, tiers=self.catalog.names)
        boards.failures = failures

        if not failures:
            self.cache.set(
                cache_key, boards, self.config.leaderboard_cache_ttl,
                tags=["leaderboards", period.period_type.value],
            )
        return boards

    def generate_commission_report(
        self,
        period_type: str = "monthly",
        agent_ids: Optional[Iterable[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        detailed: bool = False
    ) -> Dict[str, Any]:
        period = resolve_period(_enum(PeriodType, period_type), self._now(), start, end)
        query: Dict[str, Any] = {'calculated_between': (period.start, period.end)}
        if agent_ids is not None:
            query['agent_ids'] = list(agent_ids)
        awards = self.ledger.find(query)

        agents = {}
        for agent_id in sorted({a.agent_id for a in awards}):
            try:
                agents[agent_id] = self.agents.get(agent_id)
            except NotFound:
                logger.warning(f"Commission report references unknown agent {agent_id}")

        return build_commission_report(awards, agents, period, detailed=detailed)

    def agent_commission_summary(
        self,
        agent_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """One agent's awards by status, optionally limited to a calculation window."""
        self.agents.get(agent_id)
        if (start is None) != (end is None):
            raise ValidationError("start and end must be given together")

        query: Dict[str, Any] = {'agent_id': agent_id}
        if start is not None:
            start, end = as_utc(start), as_utc(end)
            if start > end:
                raise ValidationError(f"start {start.isoformat()} is after end {end.isoformat()}")
            query['calculated_between'] = (start, end)

        summary = build_agent_commission_summary(self.ledger.find(query))
        summary['agent_id'] = agent_id
        return summary

    # Leads

    def _agent_lead_counts(self, agent: Agent, delta: int) -> Dict[str, Any]:
        total = max(0, agent.total_leads + delta)
        return {
            'total_leads': total,
            'conversion_rate': _conversion_rate(agent.converted_leads, total, agent.conversion_rate),
        }

    def add_lead(self, lead: Lead) -> Lead:
        """Register a lead with its agent and count it toward their conversion rate."""
        agent = self.agents.get(lead.agent_id)
        try:
            self.leads.get(lead.id)
        except NotFound:
            pass
        else:
            raise ValidationError(f"Lead {lead.id} already exists")

        lead.apply_value_temperature()
        self.leads.add(lead)
        self.agents.update(agent.id, self._agent_lead_counts(agent, 1))
        self._invalidate(agent.id)
        logger.info(f"Lead {lead.id} added for agent {agent.id}")
        return lead

    def reassign_lead(self, lead_id: str, new_agent_id: str, reason: str) -> Lead:
        """Move a lead to another agent, carrying its count with it."""
        lead = self.leads.get(lead_id)
        new_agent = self.agents.get(new_agent_id)
        if new_agent.id == lead.agent_id:
            raise ValidationError(f"Lead {lead_id} is already assigned to {new_agent_id}")

        old_agent_id = lead.agent_id
        lead.reassign_to(new_agent.id, reason, self._now())
        self.leads.save(lead)

        try:
            old_agent = self.agents.get(old_agent_id)
        except NotFound:
            logger.warning(f"Lead {lead_id} was assigned to unknown agent {old_agent_id}")
        else:
            self.agents.update(old_agent.id, self._agent_lead_counts(old_agent, -1))
            self._invalidate(old_agent.id)
        self.agents.update(new_agent.id, self._agent_lead_counts(new_agent, 1))
        self._invalidate(new_agent.id)

        logger.info(f"Lead {lead_id} reassigned {old_agent_id} -> {new_agent.id}: {reason}")
        self._notify(new_agent.id, "lead_reassigned", {
            'lead_id': lead_id,
            'from_agent': old_agent_id,
            'reason': reason,
        })
        return lead

    def record_lead_interaction(
        self,
        lead_id: str,
        interaction_type: str,
        description: str,
        outcome: str = ""
    ) -> Lead:
        lead = self.leads.get(lead_id)
        lead.add_interaction(_enum(InteractionType, interaction_type), description, outcome, self._now())
        self.leads.save(lead)
        return lead

    def update_lead_status(self, lead_id: str, status: str, reason: str = "") -> Lead:
        lead = self.leads.get(lead_id)
        lead.update_status(_enum(LeadStatus, status), reason, self._now())
        self.leads.save(lead)
        self.aggregator.invalidate_agent(lead.agent_id)
        return lead

    def prioritize_leads(self, agent_id: Optional[str] = None, include_closed: bool = False) -> List[LeadScoreResult]:
        leads = self.leads.find({'agent_id': agent_id} if agent_id else {})
        return LeadScorer(self._now()).prioritize(leads, include_closed=include_closed)
