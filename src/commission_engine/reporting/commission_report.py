"""Commission summary reports across agents."""

from typing import Dict, List, Optional

from ..storage.models import Agent, CommissionAward, CommissionStatus, Period
from ..team.commissions import to_money


def _bucket(totals: Dict[str, Dict], key: str, award: CommissionAward):
    if key not in totals:
        totals[key] = {'commissions': 0, 'amount': 0, 'volume': 0}
    totals[key]['commissions'] += 1
    totals[key]['amount'] += award.total_amount
    totals[key]['volume'] += award.transaction_value


def _rounded(totals: Dict[str, Dict]) -> Dict[str, Dict]:
    return {
        key: {
            'commissions': v['commissions'],
            'amount': to_money(v['amount']),
            'volume': to_money(v['volume'])
        }
        for key, v in sorted(totals.items())
    }


def build_commission_report(
    awards: List[CommissionAward],
    agents: Dict[str, Agent],
    period: Period,
    detailed: bool = False,
    top_n: int = 10
) -> Dict:
    """Summarize awards by agent, tier, region and status."""
    total_amount = sum(a.total_amount for a in awards)

    by_agent: Dict[str, float] = {}
    by_tier: Dict[str, Dict] = {}
    by_region: Dict[str, Dict] = {}
    by_status: Dict[str, Dict] = {}

    for award in awards:
        by_agent[award.agent_id] = by_agent.get(award.agent_id, 0) + award.total_amount
        _bucket(by_tier, award.tier, award)
        agent: Optional[Agent] = agents.get(award.agent_id)
        _bucket(by_region, (agent.region if agent else "") or "unassigned", award)
        _bucket(by_status, award.status.value, award)

    top_performers = sorted(by_agent.items(), key=lambda x: (-x[1], x[0]))[:top_n]

    report = {
        'period': {
            'start': period.start.isoformat(),
            'end': period.end.isoformat()
        },
        'summary': {
            'total_commissions': len(awards),
            'total_amount': to_money(total_amount),
            'average_commission': to_money(total_amount / len(awards)) if awards else 0,
            'top_performers': [
                {'agent_id': agent_id, 'amount': to_money(amount)}
                for agent_id, amount in top_performers
            ]
        },
        'breakdown': {
            'by_tier': _rounded(by_tier),
            'by_region': _rounded(by_region),
            'by_status': _rounded(by_status)
        }
    }

    if detailed:
        report['commissions'] = [a.to_dict() for a in awards]

    return report


def _average(values: List[float]) -> float:
    return to_money(sum(values) / len(values)) if values else 0


def build_agent_commission_summary(awards: List[CommissionAward]) -> Dict:
    """Summarize one agent's awards by status, with pending, approved and paid totals."""
    grouped: Dict[str, List[CommissionAward]] = {}
    for award in awards:
        grouped.setdefault(award.status.value, []).append(award)

    by_status = {
        status: {
            'count': len(group),
            'total_amount': to_money(sum(a.total_amount for a in group)),
            'average_amount': _average([a.total_amount for a in group]),
            'average_rate': round(sum(a.rate for a in group) / len(group), 2),
        }
        for status, group in sorted(grouped.items())
    }

    def amount_in(status: CommissionStatus) -> float:
        return to_money(sum(a.total_amount for a in grouped.get(status.value, [])))

    return {
        'by_status': by_status,
        'total': {
            'total_commissions': len(awards),
            'total_earnings': to_money(sum(a.total_amount for a in awards)),
            'pending_amount': amount_in(CommissionStatus.PENDING),
            'approved_amount': amount_in(CommissionStatus.APPROVED),
            'paid_amount': amount_in(CommissionStatus.PAID),
            'average_transaction_value': _average([a.transaction_value for a in awards]),
            'average_rate': round(sum(a.rate for a in awards) / len(awards), 2) if awards else 0,
        }
    }
