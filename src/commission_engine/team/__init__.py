"""Commission tiers, calculation, payouts and leaderboards."""

from .tiers import TierCatalog, TierDefinition, TierRequirements, DEFAULT_TIERS
from .commissions import (
    CommissionCalculator,
    LeadContext,
    FastConversionBonus,
    HighValueBonus,
    FirstConversionBonus,
    LateFollowUpPenalty,
    next_payout_date,
    to_money,
)
from .payouts import PayoutBatcher, PayoutRun
from .leaderboard import LeaderboardRanker, Leaderboards, metric_score

__all__ = [
    'TierCatalog',
    'TierDefinition',
    'TierRequirements',
    'DEFAULT_TIERS',
    'CommissionCalculator',
    'LeadContext',
    'FastConversionBonus',
    'HighValueBonus',
    'FirstConversionBonus',
    'LateFollowUpPenalty',
    'next_payout_date',
    'to_money',
    'PayoutBatcher',
    'PayoutRun',
    'LeaderboardRanker',
    'Leaderboards',
    'metric_score',
]
