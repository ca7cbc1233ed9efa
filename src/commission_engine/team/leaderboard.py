"""Agent leaderboards."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..storage.models import Agent, AgentFailure, LeaderboardEntry, LeaderboardMetric, PerformanceMetrics

logger = logging.getLogger(__name__)

# Leaderboard metric -> PerformanceMetrics attribute used as the score
METRIC_FIELDS = {
    LeaderboardMetric.REVENUE: "total_revenue",
    LeaderboardMetric.CONVERSIONS: "leads_converted",
    LeaderboardMetric.SATISFACTION: "customer_satisfaction",
    LeaderboardMetric.GROWTH: "revenue_growth",
}


def metric_score(metrics: PerformanceMetrics, metric: LeaderboardMetric) -> float:
    return float(getattr(metrics, METRIC_FIELDS[LeaderboardMetric(metric)]) or 0)


@dataclass
class Leaderboards:
    """Overall, per-tier and per-region rankings for one metric."""

    metric: LeaderboardMetric
    overall: List[LeaderboardEntry] = field(default_factory=list)
    by_tier: Dict[str, List[LeaderboardEntry]] = field(default_factory=dict)
    by_region: Dict[str, List[LeaderboardEntry]] = field(default_factory=dict)
    failures: List[AgentFailure] = field(default_factory=list)


class LeaderboardRanker:
    """Rank agents by a score: highest first, ties broken by agent id.

    The ordering is total, so ranks are unique and stable across runs.
    """

    def __init__(self, limit: int = 50, group_limit: int = 20):
        self.limit = limit
        self.group_limit = group_limit

    @staticmethod
    def rank(entries: List[LeaderboardEntry], limit: Optional[int] = None) -> List[LeaderboardEntry]:
        """Sort entries and assign 1-based ranks. Returns new entries."""
        ordered = sorted(entries, key=lambda e: (-e.score, e.agent_id))
        if limit is not None:
            ordered = ordered[:limit]
        return [
            LeaderboardEntry(
                agent_id=e.agent_id,
                score=e.score,
                rank=position,
                agent_name=e.agent_name,
                tier=e.tier,
                region=e.region,
                metric=e.metric,
            )
            for position, e in enumerate(ordered, 1)
        ]

    def build(
        self,
        scores: Dict[str, float],
        agents: Dict[str, Agent],
        metric: LeaderboardMetric,
        limit: Optional[int] = None,
        tiers: Optional[List[str]] = None
    ) -> Leaderboards:
        """Build every board from per-agent scores.

        ``tiers`` lists the catalog tiers so each gets a board even when empty.
        """
        metric = LeaderboardMetric(metric)
        limit = self.limit if limit is None else limit
        group_limit = min(self.group_limit, limit)

        entries = []
        for agent_id, score in scores.items():
            agent = agents.get(agent_id)
            entries.append(LeaderboardEntry(
                agent_id=agent_id,
                score=score,
                agent_name=agent.name if agent else "",
                tier=agent.tier if agent else "",
                region=agent.region if agent else "",
                metric=metric.value,
            ))

        ranked = self.rank(entries)
        boards = Leaderboards(metric=metric, overall=ranked[:limit])

        # Group boards keep each agent's overall rank
        tier_groups: Dict[str, List[LeaderboardEntry]] = {name: [] for name in tiers or []}
        region_groups: Dict[str, List[LeaderboardEntry]] = {}
        for entry in ranked:
            tier_groups.setdefault(entry.tier, []).append(entry)
            if entry.region:
                region_groups.setdefault(entry.region, []).append(entry)

        boards.by_tier = {name: group[:group_limit] for name, group in tier_groups.items()}
        boards.by_region = {name: group[:group_limit] for name, group in sorted(region_groups.items())}

        logger.debug(f"Built {metric.value} leaderboards for {len(entries)} agents")
        return boards
