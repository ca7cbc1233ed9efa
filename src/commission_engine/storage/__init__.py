"""Storage models and bundled collaborator implementations."""

from .models import (
    Agent,
    AgentStatus,
    Lead,
    LeadStatus,
    LeadTemperature,
    LeadUrgency,
    CommissionAward,
    CommissionStatus,
    PayoutBatch,
    PeriodType,
    LeaderboardMetric,
)
from .memory import InMemoryAgentStore, InMemoryLeadStore, InMemoryCommissionLedger
from .cache import TTLCache

__all__ = [
    "Agent",
    "AgentStatus",
    "Lead",
    "LeadStatus",
    "LeadTemperature",
    "LeadUrgency",
    "CommissionAward",
    "CommissionStatus",
    "PayoutBatch",
    "PeriodType",
    "LeaderboardMetric",
    "InMemoryAgentStore",
    "InMemoryLeadStore",
    "InMemoryCommissionLedger",
    "TTLCache",
]
